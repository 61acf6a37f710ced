"""
Ledger configuration.

Loaded from YAML:

    epoch_length_seconds: 2592000
    max_providers: 200
    system_owner: treasury
    journal_path: .subsettle/journal.jsonl
    journal_key_path: .subsettle/journal.key
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

import yaml

from subsettle.core.exceptions import ConfigError


THIRTY_DAYS = 30 * 24 * 60 * 60


@dataclass
class LedgerConfig:
    epoch_length_seconds: int = THIRTY_DAYS
    max_providers: int = 200
    system_owner: str = "system"
    journal_path: Optional[Path] = None
    journal_key_path: Optional[Path] = None

    def __post_init__(self):
        for name in ("epoch_length_seconds", "max_providers"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise ConfigError(
                    f"{name} must be a positive integer",
                    {name: value},
                )
        if not isinstance(self.system_owner, str) or not self.system_owner:
            raise ConfigError("system_owner must be a non-empty string")
        if self.journal_path is not None:
            self.journal_path = Path(self.journal_path)
        if self.journal_key_path is not None:
            self.journal_key_path = Path(self.journal_key_path)

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "LedgerConfig":
        data = data or {}
        if not isinstance(data, dict):
            raise ConfigError("configuration must be a mapping")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError("unknown configuration keys", {"keys": unknown})
        return cls(**data)

    @classmethod
    def from_yaml(cls, config_file: Path) -> "LedgerConfig":
        """Load configuration from a YAML file."""
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"cannot read config {config_file}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"invalid YAML in {config_file}: {exc}") from exc
        return cls.from_dict(data)
