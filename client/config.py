"""Configuration management for the LedgerDrop upload client."""

import json
import os
from pathlib import Path
from typing import List, Optional

from common.constants import (
    BASELINE_DURATION_DAYS,
    CHUNK_SIZE_BYTES,
    DEFAULT_CHAIN,
    DEFAULT_SAFETY_MULTIPLIER,
)
from common.logging_config import get_logger

logger = get_logger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / '.ledgerdrop' / 'config.json'


class Config:
    """Manages client configuration stored in a JSON file."""

    DEFAULT_CONFIG = {
        "network_api": os.environ.get("LEDGERDROP_NETWORK_API", "https://spktest.dlux.io"),
        "account": os.environ.get("LEDGERDROP_ACCOUNT", ""),
        "chain": os.environ.get("LEDGERDROP_CHAIN", DEFAULT_CHAIN),
        "token_prefix": "spkccT_",
        "timeout": 30,
        "chunk_size": CHUNK_SIZE_BYTES,
        "duration_days": BASELINE_DURATION_DAYS,
        "safety_multiplier": DEFAULT_SAFETY_MULTIPLIER,
        "max_parallel_uploads": 2,
        "excluded_brokers": [
            "nathansenn.spk.tv",
            "blurtopian.com",
            "actifit.io",
        ],
        "max_retries": 3,
        "retry_backoff_multiplier": 2,
    }

    def __init__(self, config_path: Optional[Path] = None):
        """
        Initialize configuration manager.

        Args:
            config_path: Path to config JSON file (defaults to ~/.ledgerdrop/config.json)
        """
        self.config_path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH
        self.data = self._load()

    def _load(self) -> dict:
        """
        Load configuration from file, falling back to defaults.

        A corrupt file is backed up to ``config.json.bak`` and replaced by
        defaults in memory.
        """
        config = dict(self.DEFAULT_CONFIG)
        if not self.config_path.exists():
            return config

        try:
            with open(self.config_path, 'r') as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as e:
            backup_path = self.config_path.with_suffix('.json.bak')
            logger.warning(f"Unreadable config {self.config_path}: {e}; backing up to {backup_path}")
            try:
                self.config_path.replace(backup_path)
            except OSError as backup_error:
                logger.warning(f"Could not back up config: {backup_error}")
            return config

        config.update(data)
        return config

    def save(self) -> None:
        """Save current configuration to file."""
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.config_path, 'w') as f:
            json.dump(self.data, f, indent=2)

    def get(self, key: str, default=None):
        return self.data.get(key, default)

    def set(self, key: str, value) -> None:
        """Set a value and persist it."""
        self.data[key] = value
        self.save()

    @property
    def network_api(self) -> str:
        return self.data['network_api'].rstrip('/')

    @property
    def account(self) -> str:
        return self.data.get('account', '')

    @property
    def chain(self) -> str:
        return self.data.get('chain', DEFAULT_CHAIN)

    @property
    def timeout(self) -> float:
        return float(self.data.get('timeout', 30))

    @property
    def chunk_size(self) -> int:
        return int(self.data.get('chunk_size', CHUNK_SIZE_BYTES))

    @property
    def duration_days(self) -> int:
        return int(self.data.get('duration_days', BASELINE_DURATION_DAYS))

    @property
    def safety_multiplier(self) -> float:
        return self.data.get('safety_multiplier', DEFAULT_SAFETY_MULTIPLIER)

    @property
    def max_parallel_uploads(self) -> int:
        return max(int(self.data.get('max_parallel_uploads', 1)), 1)

    @property
    def excluded_brokers(self) -> List[str]:
        return list(self.data.get('excluded_brokers', []))

    @property
    def token_prefix(self) -> str:
        return self.data.get('token_prefix', 'spkccT_')

    def get_retry_config(self) -> dict:
        """
        Get retry configuration for broker discovery requests.

        Returns:
            Dictionary with 'max_retries' and 'retry_backoff_multiplier'
        """
        return {
            'max_retries': self.data.get('max_retries', 3),
            'retry_backoff_multiplier': self.data.get('retry_backoff_multiplier', 2),
        }
