"""Storage broker selection by free-space ratio."""

from typing import Iterable, List, Optional

from common.constants import DEFAULT_SAFETY_MULTIPLIER
from common.exceptions import NoProviderError
from common.interfaces import BrokerDirectory
from common.logging_config import get_logger
from common.types import BrokerInfo

logger = get_logger(__name__)


class ProviderSelector:
    """
    Picks the broker for a contract.

    A broker qualifies when it is not excluded and its free space is at least
    ``total_bytes * safety_multiplier``; the qualifying broker with the
    highest free-space ratio wins. Ties keep directory order.
    """

    def __init__(
        self,
        directory: BrokerDirectory,
        excluded: Optional[Iterable[str]] = None,
        safety_multiplier: float = DEFAULT_SAFETY_MULTIPLIER,
    ):
        self.directory = directory
        self.excluded = set(excluded or [])
        self.safety_multiplier = safety_multiplier

    def is_excluded(self, broker: BrokerInfo) -> bool:
        """Excluded entries match a node id or any part of the API URL."""
        if broker.node_id in self.excluded:
            return True
        return any(entry in broker.api for entry in self.excluded)

    def eligible(self, brokers: Iterable[BrokerInfo], total_bytes: int) -> List[BrokerInfo]:
        required = total_bytes * self.safety_multiplier
        candidates = []
        for broker in brokers:
            if self.is_excluded(broker):
                logger.debug(f"Skipping excluded broker {broker.node_id}")
                continue
            if broker.free_space < required:
                logger.debug(
                    f"Skipping broker {broker.node_id}: free={broker.free_space} < required={required}"
                )
                continue
            candidates.append(broker)
        return candidates

    async def select(self, total_bytes: int) -> BrokerInfo:
        """
        Select a broker able to hold ``total_bytes``.

        Raises:
            NoProviderError: If no broker qualifies
        """
        brokers = await self.directory.list_brokers()
        candidates = self.eligible(brokers, total_bytes)
        if not candidates:
            raise NoProviderError(
                f"No broker has {total_bytes * self.safety_multiplier:.0f} bytes free "
                f"({len(brokers)} checked)"
            )

        best = max(candidates, key=lambda broker: broker.free_space_ratio)
        logger.info(
            f"Selected broker {best.node_id} ({best.free_space_ratio:.1%} free) "
            f"out of {len(candidates)} eligible"
        )
        return best
