"""TOML config loading and profiles."""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any

# Default config search path (project root or cwd)
_CONFIG_DIR = Path(__file__).resolve().parent.parent.parent.parent / "config"
_CWD_CONFIG = Path.cwd() / "config"

BASE_SEPOLIA_CHAIN_ID = 84532
GENLAYER_TESTNET_CHAIN_ID = 4221


def _load_toml(path: Path) -> dict[str, Any]:
    with open(path, "rb") as f:
        return tomllib.load(f)


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge override into base. Override values take precedence."""
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _find_config_dir(config_dir: Path | None = None) -> Path:
    if config_dir is not None:
        return config_dir
    if _CWD_CONFIG.exists():
        return _CWD_CONFIG
    return _CONFIG_DIR


def load_config(profile: str | None = None, config_dir: Path | None = None) -> dict[str, Any]:
    """Load merged config from default.toml and optional profile overlay."""
    directory = _find_config_dir(config_dir)
    default_path = directory / "default.toml"
    if not default_path.exists():
        return {}
    base = _load_toml(default_path)
    if profile:
        profile_path = directory / f"{profile}.toml"
        if profile_path.exists():
            overlay = _load_toml(profile_path)
            base = _deep_merge(base, overlay)
    return base


def get_settings(profile: str | None = None, config_dir: Path | None = None) -> Settings:
    """Return Settings instance from merged config."""
    raw = load_config(profile, config_dir)
    return Settings.from_dict(raw)


class Settings:
    """Application settings from TOML config."""

    def __init__(
        self,
        *,
        settlement: dict[str, Any] | None = None,
        resolution: dict[str, Any] | None = None,
        wallet: dict[str, Any] | None = None,
        ledger: dict[str, Any] | None = None,
        coordinator: dict[str, Any] | None = None,
        storage: dict[str, Any] | None = None,
        logging: dict[str, Any] | None = None,
    ):
        self.settlement = settlement or {}
        self.resolution = resolution or {}
        self.wallet = wallet or {}
        self.ledger = ledger or {}
        self.coordinator = coordinator or {}
        self.storage = storage or {}
        self.logging = logging or {}

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> Settings:
        return cls(
            settlement=raw.get("settlement"),
            resolution=raw.get("resolution"),
            wallet=raw.get("wallet"),
            ledger=raw.get("ledger"),
            coordinator=raw.get("coordinator"),
            storage=raw.get("storage"),
            logging=raw.get("logging"),
        )

    # Convenience accessors with defaults
    @property
    def db_path(self) -> str:
        return self.storage.get("db_path", "data/predbridge.duckdb")

    @property
    def settlement_chain_id(self) -> int:
        return int(self.settlement.get("chain_id", BASE_SEPOLIA_CHAIN_ID))

    @property
    def settlement_chain_name(self) -> str:
        return self.settlement.get("name", "Base Sepolia")

    @property
    def settlement_rpc_endpoints(self) -> list[str]:
        """Primary endpoint first, then fallbacks in rotation order."""
        return list(self.settlement.get("rpc_endpoints") or ["https://sepolia.base.org"])

    @property
    def settlement_explorer_url(self) -> str:
        return self.settlement.get("explorer_url", "https://sepolia.basescan.org").rstrip("/")

    @property
    def factory_addresses(self) -> list[str]:
        return [a.lower() for a in self.settlement.get("factory_addresses") or []]

    @property
    def factory_address(self) -> str | None:
        """Factory that deploys new markets; defaults to the first known factory."""
        address = self.settlement.get("factory_address")
        if address:
            return address.lower()
        factories = self.factory_addresses
        return factories[0] if factories else None

    @property
    def request_timeout_sec(self) -> float:
        return float(self.settlement.get("request_timeout_sec", 10.0))

    @property
    def receipt_timeout_sec(self) -> float:
        return float(self.settlement.get("receipt_timeout_sec", 120.0))

    @property
    def funding_url(self) -> str:
        return self.settlement.get("funding_url", "https://www.alchemy.com/faucets/base-sepolia")

    @property
    def resolution_chain_id(self) -> int:
        return int(self.resolution.get("chain_id", GENLAYER_TESTNET_CHAIN_ID))

    @property
    def resolution_rpc_url(self) -> str:
        return self.resolution.get("rpc_url", "https://studio.genlayer.com/api/")

    @property
    def resolution_poll_interval_sec(self) -> float:
        return float(self.resolution.get("poll_interval_sec", 3.0))

    @property
    def resolution_timeout_sec(self) -> float:
        return float(self.resolution.get("timeout_sec", 600.0))

    @property
    def resolution_rpc_methods(self) -> dict[str, str]:
        methods = {
            "call": "gen_call",
            "send": "gen_sendTransaction",
            "receipt": "gen_getTransactionReceipt",
        }
        methods.update(self.resolution.get("rpc_methods") or {})
        return methods

    @property
    def private_key_env(self) -> str:
        return self.wallet.get("private_key_env", "PREDBRIDGE_PRIVATE_KEY")

    @property
    def private_key(self) -> str | None:
        return os.environ.get(self.private_key_env) or None

    @property
    def display_currency(self) -> str:
        return self.ledger.get("display_currency", "USD")

    @property
    def display_rate(self) -> float:
        """Display-currency units per one settlement-chain native unit."""
        return float(self.ledger.get("display_rate", 1.0))

    @property
    def allow_unrecorded_creator(self) -> bool:
        return bool(self.coordinator.get("allow_unrecorded_creator", True))

    @property
    def logging_level(self) -> str:
        return self.logging.get("level", "INFO").upper()

    @property
    def logging_format(self) -> str:
        return self.logging.get("format", "console")

    @property
    def logging_level_num(self) -> int:
        return getattr(logging, self.logging_level, logging.INFO)


def configure_logging(settings: Settings) -> None:
    """Configure structlog with settings. Call once at application entry."""
    import structlog

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
    ]
    if settings.logging_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(settings.logging_level_num),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
