"""Storage contract negotiation: credit cost, broker selection, batch signing."""

import json
import math
import secrets
import string
import time
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional, Sequence

import httpx

from client.config import Config
from client.provider_selector import ProviderSelector
from common.constants import BASELINE_DURATION_DAYS, DEFAULT_BYTES_PER_CREDIT, DEFAULT_MIN_CREDITS
from common.exceptions import InsufficientCreditsError
from common.interfaces import BrokerDirectory, Signer
from common.logging_config import get_logger
from common.protocol import join_list
from common.types import FileRecord, StorageContract
from common.utils import format_file_size

logger = get_logger(__name__)

CONTRACT_ID_ALPHABET = string.ascii_lowercase + string.digits

BalanceFunction = Callable[[], Awaitable[int]]


@dataclass(frozen=True)
class NetworkParameters:
    """Credit pricing published by the network API."""
    bytes_per_credit: int = DEFAULT_BYTES_PER_CREDIT
    min_credits: int = DEFAULT_MIN_CREDITS
    baseline_duration_days: int = BASELINE_DURATION_DAYS


@dataclass(frozen=True)
class Beneficiary:
    """Account receiving a share of the contract; ``weight`` is in [0, 1]."""
    account: str
    weight: float

    def __post_init__(self):
        if not 0 <= self.weight <= 1:
            raise ValueError(f"Beneficiary weight must be between 0 and 1, got {self.weight}")
        if not self.account or ',' in self.account:
            raise ValueError(f"Invalid beneficiary account {self.account!r}")

    def to_slot(self) -> str:
        return f"{self.account},{round(self.weight * 100)}"


def calculate_credit_cost(
    total_bytes: int,
    duration_days: int = BASELINE_DURATION_DAYS,
    params: Optional[NetworkParameters] = None,
) -> int:
    """
    Credits required to store ``total_bytes`` for ``duration_days``.

    ``ceil(bytes / bytes_per_credit)``, scaled by ``duration / baseline``
    (rounded up) when the duration differs from the baseline, and never
    below the network minimum.
    """
    params = params or NetworkParameters()
    if total_bytes < 0:
        raise ValueError(f"Total bytes must be non-negative, got {total_bytes}")
    if duration_days <= 0:
        raise ValueError(f"Duration must be positive, got {duration_days}")

    cost = math.ceil(total_bytes / params.bytes_per_credit)
    if duration_days != params.baseline_duration_days:
        cost = math.ceil(cost * duration_days / params.baseline_duration_days)
    return max(cost, params.min_credits)


async def fetch_network_parameters(
    config: Config,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> NetworkParameters:
    """
    Read ``channel_bytes``/``channel_min`` from ``GET {network_api}/``.

    Any failure falls back to the defaults with a warning.
    """
    try:
        async with httpx.AsyncClient(timeout=config.timeout, transport=transport) as session:
            response = await session.get(f"{config.network_api}/")
            response.raise_for_status()
            result = response.json().get('result') or {}
        return NetworkParameters(
            bytes_per_credit=int(result.get('channel_bytes') or DEFAULT_BYTES_PER_CREDIT),
            min_credits=int(result.get('channel_min') or DEFAULT_MIN_CREDITS),
        )
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        logger.warning(f"Failed to get network parameters, using defaults: {e}")
        return NetworkParameters()


def generate_contract_id(account: str, timestamp_ms: Optional[int] = None) -> str:
    """Contract id of the form ``<account>_<ms timestamp>_<9 random chars>``."""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    suffix = ''.join(secrets.choice(CONTRACT_ID_ALPHABET) for _ in range(9))
    return f"{account}_{timestamp_ms}_{suffix}"


def batch_signing_message(contract_id: str, cids: Sequence[str], sizes: Sequence[int], timestamp: int) -> str:
    return f"{contract_id}:{join_list(cids)}:{join_list(sizes)}:{timestamp}"


class ContractNegotiator:
    """
    Creates storage contracts and signs batches against them.

    Signer failures propagate unchanged; nothing here is retried.
    """

    def __init__(
        self,
        signer: Signer,
        directory: BrokerDirectory,
        balance: BalanceFunction,
        config: Config,
        params: Optional[NetworkParameters] = None,
    ):
        """
        Args:
            signer: Signs messages and broadcasts ledger operations
            directory: Source of candidate brokers
            balance: Coroutine function returning the spendable credit balance
            config: Client configuration
            params: Pricing; fetched from the network API on first use when omitted
        """
        self.signer = signer
        self.balance = balance
        self.config = config
        self.params = params
        self.selector = ProviderSelector(
            directory,
            excluded=config.excluded_brokers,
            safety_multiplier=config.safety_multiplier,
        )

    async def network_parameters(self) -> NetworkParameters:
        if self.params is None:
            self.params = await fetch_network_parameters(self.config)
        return self.params

    async def create_contract(
        self,
        total_bytes: int,
        duration_days: int = BASELINE_DURATION_DAYS,
        beneficiary: Optional[Beneficiary] = None,
    ) -> StorageContract:
        """
        Open a storage contract for ``total_bytes``.

        Raises:
            InsufficientCreditsError: If the balance is below the credit cost
            NoProviderError: If no broker has room for the contract
        """
        params = await self.network_parameters()
        cost = calculate_credit_cost(total_bytes, duration_days, params)

        available = await self.balance()
        if cost > available:
            raise InsufficientCreditsError(required=cost, available=available)

        logger.info(f"Selecting storage broker for {format_file_size(total_bytes)}")
        broker = await self.selector.select(total_bytes)

        account = self.signer.account
        payload = {
            'to': account,
            'broca': cost,
            'broker': broker.node_id,
            'contract': '0',
        }
        if beneficiary is not None:
            payload['contract'] = '1'
            payload['slots'] = beneficiary.to_slot()

        operation = ['custom_json', {
            'required_auths': [],
            'required_posting_auths': [account],
            'id': f"{self.config.token_prefix}channel_open",
            'json': json.dumps(payload),
        }]
        result = await self.signer.broadcast([operation])

        created_at = datetime.now()
        contract = StorageContract(
            contract_id=generate_contract_id(account),
            account=account,
            broker=broker,
            total_size=total_bytes,
            credit_cost=cost,
            duration_days=duration_days,
            created_at=created_at,
            expires_at=created_at + timedelta(days=duration_days),
            transaction_id=str(result.get('transaction_id', '')),
        )
        logger.info(
            f"Contract {contract.contract_id} created on broker {broker.node_id} "
            f"for {cost} credits (tx={contract.transaction_id})"
        )
        return contract

    async def sign_batch(self, contract: StorageContract, records: Sequence[FileRecord]) -> StorageContract:
        """
        Produce the single signature authorizing every member of a batch.

        The signed message binds the contract id, all CIDs, all sizes and a
        timestamp; member order follows ``records``.
        """
        cids = tuple(record.cid for record in records)
        sizes = tuple(record.size for record in records)
        timestamp = int(time.time() * 1000)

        signature = await self.signer.sign(batch_signing_message(contract.contract_id, cids, sizes, timestamp))
        logger.debug(f"Signed batch of {len(cids)} file(s) for contract {contract.contract_id}")
        return replace(contract, cids=cids, sizes=sizes, signature=signature, signed_at=timestamp)
