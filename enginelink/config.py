"""Engine session options, their allowed ranges and loaders."""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Union

from .errors import InvalidConfiguration

MAX_CANDIDATES = 10

# field name -> (minimum, maximum); None means unbounded
OPTION_RANGES: Dict[str, Tuple[Optional[int], Optional[int]]] = {
    "threads": (1, 16),
    "hash_mb": (1, 4096),
    "default_depth": (1, 30),
    "init_timeout_ms": (1, None),
    "search_timeout_ms": (1, None),
    "stop_grace_ms": (1, None),
    "probe_timeout_ms": (1, None),
}

# Keys used by the interactive application's stored configuration.
OPTION_ALIASES = {
    "depth": "default_depth",
    "initTimeout": "init_timeout_ms",
    "moveTimeout": "search_timeout_ms",
    "hashSize": "hash_mb",
    "threadCount": "threads",
    "memoryBudgetMb": "hash_mb",
    "initTimeoutMs": "init_timeout_ms",
    "searchTimeoutMs": "search_timeout_ms",
    "defaultDepth": "default_depth",
    "stopGraceMs": "stop_grace_ms",
    "probeTimeoutMs": "probe_timeout_ms",
}


@dataclass(frozen=True)
class EngineOptions:
    """Configuration applied to one engine session."""

    threads: int = 1
    hash_mb: int = 128
    default_depth: int = 15
    init_timeout_ms: int = 10000
    search_timeout_ms: int = 30000
    stop_grace_ms: int = 2000
    probe_timeout_ms: int = 1000
    debug: bool = False

    def validate(self) -> "EngineOptions":
        for name, (minimum, maximum) in OPTION_RANGES.items():
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfiguration(f"{name} must be an integer, got {value!r}")
            if minimum is not None and value < minimum:
                raise InvalidConfiguration(
                    _range_message(name, minimum, maximum, value)
                )
            if maximum is not None and value > maximum:
                raise InvalidConfiguration(
                    _range_message(name, minimum, maximum, value)
                )
        if not isinstance(self.debug, bool):
            raise InvalidConfiguration(f"debug must be true or false, got {self.debug!r}")
        return self

    def uci_options(self) -> Dict[str, int]:
        """Options sent once during the handshake, in order."""
        return {"Threads": self.threads, "Hash": self.hash_mb}

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> "EngineOptions":
        """Build validated options from a plain dictionary.

        Accepts snake_case field names, the camelCase keys used by the
        application's stored configuration, and an optional nested
        ``engine`` section. Unknown keys are ignored.
        """
        source: Dict[str, Any] = dict(mapping)
        engine_section = source.pop("engine", None)
        if isinstance(engine_section, Mapping):
            source.update(engine_section)

        known = {item.name for item in fields(cls)}
        values: Dict[str, Any] = {}
        for key, raw in source.items():
            name = key if key in known else OPTION_ALIASES.get(key)
            if name is None:
                continue
            values[name] = _coerce(name, raw)
        return cls(**values).validate()


def load_options(path: Union[str, Path]) -> EngineOptions:
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found at: {config_path}")
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise InvalidConfiguration(f"Invalid configuration file {config_path}: {exc}") from exc
    if not isinstance(raw, dict):
        raise InvalidConfiguration(f"Configuration root must be an object: {config_path}")
    return EngineOptions.from_mapping(raw)


def _coerce(name: str, raw: Any) -> Any:
    if name == "debug":
        if isinstance(raw, bool):
            return raw
        if raw in ("true", "on", "1"):
            return True
        if raw in ("false", "off", "0"):
            return False
        raise InvalidConfiguration(f"debug must be true or false, got {raw!r}")
    if isinstance(raw, str):
        try:
            return int(raw.strip())
        except ValueError as exc:
            raise InvalidConfiguration(f"{name} must be an integer, got {raw!r}") from exc
    return raw


def _range_message(name: str, minimum: Optional[int], maximum: Optional[int], value: int) -> str:
    if maximum is None:
        return f"{name} must be at least {minimum}, got {value}"
    return f"{name} must be between {minimum} and {maximum}, got {value}"
