"""Vault root resolution and user configuration.

The vault root is resolved from the environment only by the outer callers
(CLI, API app, end-of-session hook) and then passed to every component.
"""

import json
import logging
import os
import re
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path

from .core import RedactionRule

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "config.json"
EXPORT_FORMATS = ("md", "json")


def get_vault_dir() -> Path:
    """Return the vault root directory."""
    for var in ("SESSION_VAULT_DIR", "VAULT_DIR"):
        env = os.environ.get(var)
        if env:
            return Path(env)

    return Path.home() / ".session-vault"


def get_config_path(vault_dir: Path) -> Path:
    return vault_dir / CONFIG_FILE_NAME


@dataclass
class VaultConfig:
    """User-tunable settings stored in ``<vault>/config.json``."""

    auto_save: bool = False
    auto_save_min_messages: int = 5
    max_transcript_size_mb: float = 10
    redaction_rules: list[RedactionRule] = field(default_factory=list)
    viewer_port: int = 3777
    default_export_format: str = "md"

    def to_dict(self) -> dict:
        return asdict(self)


# Per-field validators: return True if the value is acceptable.
_VALIDATORS = {
    "auto_save": lambda v: isinstance(v, bool),
    "auto_save_min_messages": lambda v: isinstance(v, int) and not isinstance(v, bool) and v >= 1,
    "max_transcript_size_mb": lambda v: isinstance(v, (int, float)) and not isinstance(v, bool) and v > 0,
    "viewer_port": lambda v: isinstance(v, int) and not isinstance(v, bool) and 1024 <= v <= 65535,
    "default_export_format": lambda v: v in EXPORT_FORMATS,
}


def _parse_redaction_rules(raw) -> list[RedactionRule]:
    if not isinstance(raw, list):
        logger.warning("Ignoring redaction_rules: expected a list, got %s", type(raw).__name__)
        return []

    rules = []
    for item in raw:
        if not isinstance(item, dict) or not isinstance(item.get("pattern"), str):
            logger.warning("Ignoring malformed redaction rule: %r", item)
            continue
        try:
            re.compile(item["pattern"])
        except re.error as e:
            logger.warning("Ignoring redaction rule %r: %s", item["pattern"], e)
            continue
        replacement = item.get("replacement", "[REDACTED]")
        if not isinstance(replacement, str):
            replacement = "[REDACTED]"
        rules.append(RedactionRule(pattern=item["pattern"], replacement=replacement))
    return rules


def config_from_dict(data: dict) -> VaultConfig:
    """Build a VaultConfig, keeping defaults for missing or invalid values."""
    config = VaultConfig()
    for f in fields(VaultConfig):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name == "redaction_rules":
            config.redaction_rules = _parse_redaction_rules(value)
            continue
        if not _VALIDATORS[f.name](value):
            logger.warning("Invalid config value for %s: %r (using default)", f.name, value)
            continue
        setattr(config, f.name, value)
    return config


def load_config(vault_dir: Path) -> VaultConfig:
    """Load config from the vault, returning defaults if absent or unreadable."""
    path = get_config_path(vault_dir)
    if not path.exists():
        return VaultConfig()
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to read %s: %s (using defaults)", path, e)
        return VaultConfig()

    if not isinstance(data, dict):
        return VaultConfig()
    return config_from_dict(data)


def save_config(config: VaultConfig, vault_dir: Path) -> None:
    """Validate and write config to the vault."""
    validated = config_from_dict(config.to_dict())
    path = get_config_path(vault_dir)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(validated.to_dict(), indent=2) + "\n", encoding="utf-8")
