"""Broker directory backed by the network API and per-broker stats polling."""

import asyncio
from typing import Dict, List, Optional

import aiohttp

from client.config import Config
from common.constants import BROKER_STATS_TIMEOUT_SECONDS
from common.exceptions import BrokerUnavailableError
from common.interfaces import BrokerDirectory
from common.logging_config import get_logger
from common.protocol import UploadStats
from common.types import BrokerInfo

logger = get_logger(__name__)


class HttpBrokerDirectory(BrokerDirectory):
    """
    Lists brokers registered for the IPFS service and polls their capacity.

    The service list comes from ``GET {network_api}/services/IPFS``; each
    broker is then asked for ``GET {api}/upload-stats`` concurrently. A broker
    whose poll fails or times out is left out of the result.
    """

    def __init__(self, config: Config, stats_timeout: float = BROKER_STATS_TIMEOUT_SECONDS):
        self.config = config
        self.stats_timeout = stats_timeout

    async def list_brokers(self) -> List[BrokerInfo]:
        services = await self.fetch_services()
        if not services:
            logger.warning("Network API returned no IPFS services")
            return []

        async with aiohttp.ClientSession() as session:
            results = await asyncio.gather(
                *(self._poll_broker(session, node_id, api) for node_id, api in services.items()),
                return_exceptions=True
            )

        brokers = []
        for (node_id, api), result in zip(services.items(), results):
            if isinstance(result, BrokerInfo):
                brokers.append(result)
            else:
                logger.debug(f"Stats poll for broker {node_id} at {api} failed: {result}")

        logger.info(f"Fetched stats for {len(brokers)}/{len(services)} brokers")
        return brokers

    async def fetch_services(self) -> Dict[str, str]:
        """
        Fetch the broker service list with retry and exponential backoff.

        Returns:
            Mapping of broker node id to API base URL

        Raises:
            BrokerUnavailableError: If the network API stays unreachable
        """
        retry_config = self.config.get_retry_config()
        max_retries = retry_config['max_retries']
        backoff = retry_config['retry_backoff_multiplier']
        url = f"{self.config.network_api}/services/IPFS"

        for attempt in range(max_retries + 1):
            try:
                async with aiohttp.ClientSession() as session:
                    async with session.get(
                        url,
                        timeout=aiohttp.ClientTimeout(total=self.config.timeout)
                    ) as resp:
                        if resp.status != 200:
                            raise BrokerUnavailableError(f"Service list request failed: status={resp.status}")
                        data = await resp.json()
                return parse_services(data)

            except (aiohttp.ClientError, asyncio.TimeoutError, BrokerUnavailableError) as e:
                if attempt == max_retries:
                    logger.error(f"Service list fetch failed after {max_retries + 1} attempts: {e}")
                    raise BrokerUnavailableError(f"Cannot fetch broker list from {url}") from e
                wait_time = backoff ** attempt
                logger.warning(
                    f"Service list attempt {attempt + 1}/{max_retries + 1} failed: {e}, retrying in {wait_time}s"
                )
                await asyncio.sleep(wait_time)

    async def _poll_broker(self, session: aiohttp.ClientSession, node_id: str, api: str) -> BrokerInfo:
        async with session.get(
            f"{api.rstrip('/')}/upload-stats",
            headers={'Accept': 'application/json'},
            timeout=aiohttp.ClientTimeout(total=self.stats_timeout)
        ) as resp:
            if resp.status != 200:
                raise BrokerUnavailableError(f"HTTP {resp.status}")
            stats = UploadStats.from_dict(await resp.json())

        return BrokerInfo(
            node_id=stats.node or node_id,
            api=api.rstrip('/'),
            total_space=stats.storage_max,
            used_space=stats.repo_size,
        )


def parse_services(data: Optional[dict]) -> Dict[str, str]:
    """
    Flatten the ``services`` groups of a service listing.

    Each group maps node id to an entry carrying its API URL under ``a``
    (or ``api``); entries without a URL are dropped.
    """
    services: Dict[str, str] = {}
    for group in (data or {}).get('services') or []:
        for node_id, entry in group.items():
            api = (entry or {}).get('a') or (entry or {}).get('api')
            if api:
                services[node_id] = api
    return services
