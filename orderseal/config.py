"""
orderseal configuration.

One YAML file, three sections:

    exchange:
      exchange_address: "0x..."
      proxy_address:    "0x..."      # spender approved by makers and takers
      fee_token:        "0x..."      # every fee is paid in this token
    sale:
      owner:                "0x..."
      sale_address:         "0x..."
      protocol_token:       "0x..."
      wrapped_native_token: "0x..."
      cap_per_address:      1000000000000000000
    journal:
      path:     ".orderseal/journal.jsonl"
      key_path: ".orderseal/keys/journal.pem"

The file is found via the `path` argument or ORDERSEAL_CONFIG.
ORDERSEAL_CAP_PER_ADDRESS and ORDERSEAL_JOURNAL_PATH override file values.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from orderseal.core.exceptions import ConfigError
from orderseal.core.models import normalize_address

CONFIG_ENV_VAR = "ORDERSEAL_CONFIG"
CAP_ENV_VAR = "ORDERSEAL_CAP_PER_ADDRESS"
JOURNAL_PATH_ENV_VAR = "ORDERSEAL_JOURNAL_PATH"

DEFAULT_JOURNAL_PATH = ".orderseal/journal.jsonl"


def _normalize_fields(config, names) -> None:
    for name in names:
        object.__setattr__(config, name, normalize_address(getattr(config, name), name))


@dataclass(frozen=True)
class ExchangeConfig:
    exchange_address: str
    proxy_address:    str
    fee_token:        str

    def __post_init__(self):
        _normalize_fields(self, ("exchange_address", "proxy_address", "fee_token"))


@dataclass(frozen=True)
class SaleConfig:
    owner:                str
    sale_address:         str
    protocol_token:       str
    wrapped_native_token: str
    cap_per_address:      int

    def __post_init__(self):
        _normalize_fields(
            self, ("owner", "sale_address", "protocol_token", "wrapped_native_token")
        )


@dataclass(frozen=True)
class JournalConfig:
    path:     Path
    key_path: Optional[Path] = None


@dataclass(frozen=True)
class OrderSealConfig:
    exchange: ExchangeConfig
    sale:     Optional[SaleConfig]
    journal:  JournalConfig


def _address(section: Dict[str, Any], key: str, section_name: str) -> str:
    if key not in section:
        raise ConfigError(f"Missing required setting {section_name}.{key}")
    try:
        return normalize_address(section[key], f"{section_name}.{key}")
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc


def _amount(value: Any, name: str) -> int:
    try:
        amount = int(value)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from exc
    if amount < 0:
        raise ConfigError(f"{name} cannot be negative: {amount}")
    return amount


def config_from_dict(raw: Dict[str, Any], environ: Optional[Dict[str, str]] = None) -> OrderSealConfig:
    """Validate a parsed config mapping and apply environment overrides."""
    environ = os.environ if environ is None else environ
    if not isinstance(raw, dict):
        raise ConfigError("Configuration root must be a mapping")

    exchange_raw = raw.get("exchange")
    if not isinstance(exchange_raw, dict):
        raise ConfigError("Missing required section 'exchange'")
    exchange = ExchangeConfig(
        exchange_address=_address(exchange_raw, "exchange_address", "exchange"),
        proxy_address=_address(exchange_raw, "proxy_address", "exchange"),
        fee_token=_address(exchange_raw, "fee_token", "exchange"),
    )

    sale = None
    sale_raw = raw.get("sale")
    if sale_raw is not None:
        if not isinstance(sale_raw, dict):
            raise ConfigError("Section 'sale' must be a mapping")
        cap = environ.get(CAP_ENV_VAR, sale_raw.get("cap_per_address"))
        if cap is None:
            raise ConfigError("Missing required setting sale.cap_per_address")
        sale = SaleConfig(
            owner=_address(sale_raw, "owner", "sale"),
            sale_address=_address(sale_raw, "sale_address", "sale"),
            protocol_token=_address(sale_raw, "protocol_token", "sale"),
            wrapped_native_token=_address(sale_raw, "wrapped_native_token", "sale"),
            cap_per_address=_amount(cap, "sale.cap_per_address"),
        )

    journal_raw = raw.get("journal") or {}
    journal_path = environ.get(JOURNAL_PATH_ENV_VAR, journal_raw.get("path", DEFAULT_JOURNAL_PATH))
    key_path = journal_raw.get("key_path")
    journal = JournalConfig(
        path=Path(journal_path),
        key_path=Path(key_path) if key_path else None,
    )

    return OrderSealConfig(exchange=exchange, sale=sale, journal=journal)


def load_config(path: Optional[Path] = None, environ: Optional[Dict[str, str]] = None) -> OrderSealConfig:
    """
    Load configuration from YAML.
    Raises ConfigError if no file is given, it is missing, or it is invalid.
    """
    environ = os.environ if environ is None else environ
    if path is None:
        path = environ.get(CONFIG_ENV_VAR)
        if not path:
            raise ConfigError(f"No config path given and {CONFIG_ENV_VAR} is not set")
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"Config file not found: {path}")

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {path}: {exc}") from exc

    return config_from_dict(raw or {}, environ)
