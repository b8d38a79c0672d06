"""TOML configuration for a staking run."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from .retry import BACKOFF_MODES, RetryPolicy
from .validation import (
    ValidationError,
    validate_account_name,
    validate_non_negative_number,
    validate_positive_amount,
    validate_positive_int,
    validate_symbol,
    validate_url,
)


DEFAULT_CONFIG_FILE = "config.toml"
MODES = ("cpu", "net", "split")


class ConfigError(RuntimeError):
    """Raised when the configuration is missing or malformed."""


@dataclass(frozen=True)
class RetrySettings:
    settle_wait: float = 1.5
    revalidate_wait: float = 3.5
    reference_delay: float = 0.005
    reference_max_attempts: Optional[int] = None
    resend_max_attempts: Optional[int] = None
    resend_delay: float = 0.0
    resend_backoff: str = "fixed"

    @property
    def reference_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.reference_max_attempts, delay=self.reference_delay)

    @property
    def resend_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.resend_max_attempts,
            delay=self.resend_delay,
            backoff=self.resend_backoff,
        )


@dataclass(frozen=True)
class StakerConfig:
    keys: Tuple[str, ...] = field(repr=False)
    account: str
    node_url: str
    chunk_size: int
    use_balance: Decimal
    mode: str = "cpu"
    symbol: str = "WAX"
    precision: int = 8
    token_contract: str = "eosio.token"
    accounts_file: Path = Path("accounts.txt")
    progress_file: Path = Path("done.txt")
    log_file: Optional[Path] = None
    retry: RetrySettings = RetrySettings()


def _optional_attempts(value: Any, name: str) -> Optional[int]:
    if value is None or value == 0:
        return None
    validate_positive_int(value, name)
    return value


def _parse_retry(raw: Dict[str, Any]) -> RetrySettings:
    defaults = RetrySettings()
    backoff = raw.get("resend_backoff", defaults.resend_backoff)
    if backoff not in BACKOFF_MODES:
        raise ValidationError(f"resend_backoff must be one of {BACKOFF_MODES}")
    return RetrySettings(
        settle_wait=validate_non_negative_number(
            raw.get("settle_wait", defaults.settle_wait), "settle_wait"
        ),
        revalidate_wait=validate_non_negative_number(
            raw.get("revalidate_wait", defaults.revalidate_wait), "revalidate_wait"
        ),
        reference_delay=validate_non_negative_number(
            raw.get("reference_delay", defaults.reference_delay), "reference_delay"
        ),
        reference_max_attempts=_optional_attempts(
            raw.get("reference_max_attempts"), "reference_max_attempts"
        ),
        resend_max_attempts=_optional_attempts(
            raw.get("resend_max_attempts"), "resend_max_attempts"
        ),
        resend_delay=validate_non_negative_number(
            raw.get("resend_delay", defaults.resend_delay), "resend_delay"
        ),
        resend_backoff=backoff,
    )


def parse_config(data: Dict[str, Any], base_dir: Union[str, Path] = ".") -> StakerConfig:
    """Build a :class:`StakerConfig` from decoded TOML.

    Relative file paths are resolved against ``base_dir``.
    """
    section = data.get("config")
    if not isinstance(section, dict):
        raise ConfigError("missing [config] table")
    base_dir = Path(base_dir)
    try:
        keys = section["pkey"]
        if isinstance(keys, str):
            keys = [keys]
        if not isinstance(keys, list) or not keys or not all(isinstance(k, str) and k for k in keys):
            raise ValidationError("pkey must be a key string or a list of key strings")
        account = section["account"]
        validate_account_name(account)
        node_url = section["wax_node"]
        validate_url(node_url)
        chunk_size = section["chunk_size"]
        validate_positive_int(chunk_size, "chunk_size")
        use_balance = validate_positive_amount(section["use_balance"], "use_balance")
        mode = section.get("mode") or "cpu"
        if mode not in MODES:
            raise ValidationError(f"mode must be one of {MODES}: {mode}")
        symbol = section.get("symbol", "WAX")
        precision = section.get("precision", 8)
        validate_symbol(symbol, precision)
        token_contract = section.get("token_contract", "eosio.token")
        validate_account_name(token_contract)
        log_file = section.get("log_file")
        retry = _parse_retry(data.get("retry") or {})
    except KeyError as exc:
        raise ConfigError(f"missing config key: {exc.args[0]}") from exc
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    return StakerConfig(
        keys=tuple(keys),
        account=account,
        node_url=node_url,
        chunk_size=chunk_size,
        use_balance=use_balance,
        mode=mode,
        symbol=symbol,
        precision=precision,
        token_contract=token_contract,
        accounts_file=base_dir / section.get("accounts_file", "accounts.txt"),
        progress_file=base_dir / section.get("progress_file", "done.txt"),
        log_file=base_dir / log_file if log_file else None,
        retry=retry,
    )


def load_config(path: Union[str, Path] = DEFAULT_CONFIG_FILE) -> StakerConfig:
    path = Path(path)
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except OSError as exc:
        raise ConfigError(f"loading {path}: {exc}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"parsing {path}: {exc}") from exc
    return parse_config(data, base_dir=path.parent)
