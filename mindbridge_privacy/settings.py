"""
Runtime settings for the proof service and aggregation engine.

Resolved in precedence order: explicit overrides, ``MINDBRIDGE_*``
environment variables, a YAML settings file, then defaults.
"""

from __future__ import annotations

import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml

from .aggregation.config import (
    DEFAULT_DECRYPTION_TABLE_BITS,
    DEFAULT_EPSILON_CAP,
    MAX_DECRYPTION_TABLE_BITS,
)
from .zk.config import (
    DEFAULT_CACHE_TTL_SECONDS,
    DEFAULT_PROVER_WORKERS,
    MAX_PROOFS_IN_MEMORY,
)

ENV_PREFIX = "MINDBRIDGE_"
SETTINGS_ENV_VAR = "MINDBRIDGE_SETTINGS"


@dataclass(frozen=True)
class EngineSettings:
    artifacts_dir: str = "artifacts"
    cache_ttl_seconds: float = DEFAULT_CACHE_TTL_SECONDS
    cache_max_entries: int = MAX_PROOFS_IN_MEMORY
    prover_workers: int = DEFAULT_PROVER_WORKERS
    epsilon_cap: float = DEFAULT_EPSILON_CAP
    decryption_table_bits: int = DEFAULT_DECRYPTION_TABLE_BITS
    log_level: str = "INFO"
    log_json: bool = False

    def __post_init__(self) -> None:
        if self.cache_ttl_seconds <= 0:
            raise ValueError("cache_ttl_seconds must be positive")
        if self.cache_max_entries < 1:
            raise ValueError("cache_max_entries must be positive")
        if self.prover_workers < 1:
            raise ValueError("prover_workers must be positive")
        if self.epsilon_cap <= 0:
            raise ValueError("epsilon_cap must be positive")
        if not 0 < self.decryption_table_bits <= MAX_DECRYPTION_TABLE_BITS:
            raise ValueError(
                f"decryption_table_bits must be in [1, {MAX_DECRYPTION_TABLE_BITS}]"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _coerce(name: str, raw: Any, target: Any) -> Any:
    if isinstance(target, bool):
        if isinstance(raw, bool):
            return raw
        value = str(raw).strip().lower()
        if value in {"1", "true", "yes", "on"}:
            return True
        if value in {"0", "false", "no", "off"}:
            return False
        raise ValueError(f"{name}: expected a boolean, got {raw!r}")
    try:
        return type(target)(raw)
    except (TypeError, ValueError) as e:
        raise ValueError(f"{name}: cannot parse {raw!r}") from e


def _from_file(path: Path) -> Dict[str, Any]:
    raw = path.read_text(encoding="utf-8")
    data = yaml.safe_load(raw) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: settings file must contain a mapping")
    return data


def _from_env(environ: Mapping[str, str]) -> Dict[str, Any]:
    values: Dict[str, Any] = {}
    for spec in fields(EngineSettings):
        key = ENV_PREFIX + spec.name.upper()
        if key in environ:
            values[spec.name] = environ[key]
    return values


def load_settings(
    path: Optional[str | Path] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> EngineSettings:
    """
    Build EngineSettings.

    Raises:
        ValueError: Unknown keys or unparsable values
        OSError: The settings file cannot be read
    """
    environ = os.environ if environ is None else environ
    path = path or environ.get(SETTINGS_ENV_VAR)

    merged: Dict[str, Any] = {}
    if path:
        merged.update(_from_file(Path(path)))
    merged.update(_from_env(environ))
    merged.update({k: v for k, v in overrides.items() if v is not None})

    defaults = EngineSettings()
    known = {spec.name for spec in fields(EngineSettings)}
    unknown = set(merged) - known
    if unknown:
        raise ValueError(f"unknown settings: {sorted(unknown)}")

    coerced = {
        name: _coerce(name, value, getattr(defaults, name))
        for name, value in merged.items()
    }
    return replace(defaults, **coerced)
