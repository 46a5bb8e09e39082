# config.py
# SPDX-License-Identifier: MIT
"""Configuration models and helpers for spdxflow.

Declarative dataclasses for the batch engine, the license policy, and
logging, plus helpers for serializing and loading a configuration from
JSON and TOML. Config objects only hold plain values; runtime objects
(handlers, interpreters, executors) are built from them on demand.
"""
from __future__ import annotations

import json
try:  # pragma: no cover - optional dependency
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except Exception:  # pragma: no cover
        tomllib = None  # type: ignore[assignment]
import types
from collections.abc import Sequence as ABCSequence
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union, get_args, get_origin, get_type_hints

from .log import DEFAULT_LOG_FORMAT, PACKAGE_LOGGER_NAME, configure_logging, resolve_level
from .policy import LicensePolicy, asf_policy, load_policy

T = TypeVar("T")

POLICY_BASES = {"asf", "empty"}


# ---------------------------------------------------------------------------
# Batch engine
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class BatchConfig:
    """Knobs for :class:`spdxflow.core.batching.BatchProcessor`.

    The defaults are unbounded: a batch grows until every live task is
    waiting, each task gets its own worker thread, and requests wait
    forever. A handler that never resolves a request therefore hangs the
    run unless ``request_timeout`` is set.

    Attributes:
        max_batch_size (int | None): Flush as soon as the open batch holds
            this many requests, even if other tasks are still running.
        max_workers (int | None): Number of worker threads driving task
            bodies. Fewer workers than tasks means later tasks start only
            after earlier ones finish, which yields smaller batches.
        request_timeout (float | None): Seconds a task waits for one
            request before it fails with ``BatchTimeoutError``.
    """
    max_batch_size: Optional[int] = None
    max_workers: Optional[int] = None
    request_timeout: Optional[float] = None

    def validate(self) -> None:
        if self.max_batch_size is not None and self.max_batch_size < 1:
            raise ValueError("batch.max_batch_size must be >= 1 when set.")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("batch.max_workers must be >= 1 when set.")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ValueError("batch.request_timeout must be > 0 when set.")


# ---------------------------------------------------------------------------
# License policy
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class PolicyConfig:
    """Where the license category tables come from.

    ``base`` picks the built-in table (``"asf"`` or ``"empty"``); ``path``
    layers a policy file on top; the inline ``licenses``, ``exceptions``
    and ``overrides`` tables are applied last.
    """
    base: str = "asf"
    path: Optional[str] = None
    licenses: Dict[str, Any] = field(default_factory=dict)
    exceptions: Dict[str, Any] = field(default_factory=dict)
    overrides: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        base = (self.base or "asf").strip().lower()
        if base not in POLICY_BASES:
            raise ValueError(f"policy.base must be one of {sorted(POLICY_BASES)}; got {self.base!r}.")
        self.base = base

    def build_policy(self) -> LicensePolicy:
        """Assemble the effective :class:`LicensePolicy`."""
        self.validate()
        policy = asf_policy() if self.base == "asf" else LicensePolicy()
        if self.path:
            policy = policy.merged(load_policy(self.path))
        inline = LicensePolicy.from_dict(
            {
                "licenses": self.licenses,
                "exceptions": self.exceptions,
                "overrides": self.overrides,
            }
        )
        return policy.merged(inline)


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class LoggingConfig:
    """Stream logging for the CLI and embedding applications.

    Attributes:
        level (int | str): Level number or name; the CLI ``--log-level``
            flag replaces it.
        propagate (bool | None): Whether records also reach ancestor
            loggers. None leaves propagation on.
        fmt (str | None): Handler format; None keeps the current one.
        logger_name (str): Logger the handler is attached to.
    """
    level: int | str = "INFO"
    propagate: Optional[bool] = None
    fmt: Optional[str] = DEFAULT_LOG_FORMAT
    logger_name: str = PACKAGE_LOGGER_NAME

    def validate(self) -> None:
        resolve_level(self.level)
        if not self.logger_name:
            raise ValueError("logging.logger_name must not be empty.")

    def apply(self) -> None:
        """Validate, then attach the spdxflow stream handler."""
        self.validate()
        configure_logging(
            level=self.level,
            propagate=self.propagate,
            fmt=self.fmt,
            logger_name=self.logger_name,
        )


# ---------------------------------------------------------------------------
# Master config
# ---------------------------------------------------------------------------

@dataclass(slots=True)
class SpdxflowConfig:
    """Declarative settings for a spdxflow run."""
    batch: BatchConfig = field(default_factory=BatchConfig)
    policy: PolicyConfig = field(default_factory=PolicyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def validate(self) -> None:
        """Validate every section, normalizing values in place."""
        self.batch.validate()
        self.policy.validate()
        self.logging.validate()

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-serializable representation, skipping None values."""
        return _dataclass_to_dict(self)

    def to_json(self, path: Path | str, *, indent: int = 2) -> str:
        """Serialize the configuration to JSON and write it to disk.

        Returns:
            str: String path to the written file.
        """
        target = Path(path)
        target.write_text(json.dumps(self.to_dict(), indent=indent, sort_keys=True), encoding="utf-8")
        return str(target)

    @classmethod
    def from_dict(cls: Type[T], data: Mapping[str, Any]) -> T:
        return _dataclass_from_dict(cls, data)

    @classmethod
    def from_json(cls: Type[T], path: Path | str) -> T:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
        return cls.from_dict(payload)

    @classmethod
    def from_toml(cls: Type[T], path: Path | str) -> T:
        """
        Load a config from TOML with top-level ``[batch]``, ``[policy]``
        and ``[logging]`` tables.
        """
        if tomllib is None:
            raise RuntimeError(
                "TOML support requires Python 3.11+ (tomllib) or installing the 'tomli' package."
            )
        data = tomllib.loads(Path(path).read_bytes().decode("utf-8"))
        if not isinstance(data, Mapping):
            raise TypeError(f"Top-level TOML document must be a mapping; got {type(data).__name__}.")
        return cls.from_dict(data)


def load_config_from_path(path: str | Path) -> SpdxflowConfig:
    """Load a SpdxflowConfig from a JSON or TOML file.

    Raises:
        ValueError: If the file extension is not ``.toml`` or ``.json``.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".toml":
        cfg = SpdxflowConfig.from_toml(p)
    elif suffix == ".json":
        cfg = SpdxflowConfig.from_json(p)
    else:
        raise ValueError(f"Unsupported config extension {p.suffix!r}; expected .toml or .json.")
    cfg.validate()
    return cfg


def _dataclass_to_dict(obj: Any) -> Dict[str, Any]:
    """Serialize dataclasses to JSON-friendly dicts, skipping None values."""
    result: Dict[str, Any] = {}
    for f in fields(obj):
        value = getattr(obj, f.name)
        if value is None:
            continue
        result[f.name] = _serialize_value(value)
    return result


def _serialize_value(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(_serialize_value(v) for v in value)
    if isinstance(value, (list, tuple)):
        return [_serialize_value(v) for v in value]
    if isinstance(value, Mapping):
        return {str(k): _serialize_value(v) for k, v in value.items() if v is not None}
    if is_dataclass(value):
        return _dataclass_to_dict(value)
    return str(value)


def _dataclass_from_dict(cls: Type[T], data: Mapping[str, Any] | None) -> T:
    """Instantiate dataclass ``cls`` from a mapping, rejecting unknown keys."""
    if data is None:
        return cls()  # type: ignore[call-arg]
    if not isinstance(data, Mapping):
        raise TypeError(f"Expected a mapping for {cls.__name__}; got {type(data).__name__}.")
    known = {f.name for f in fields(cls)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown {cls.__name__} keys: {sorted(unknown)}")
    type_hints = get_type_hints(cls)
    kwargs: Dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        kwargs[f.name] = _coerce_value(type_hints.get(f.name, f.type), data[f.name])
    return cls(**kwargs)  # type: ignore[arg-type]


def _coerce_value(expected_type: Any, value: Any) -> Any:
    base_type, _ = _strip_optional(expected_type)
    if value is None:
        return None
    if isinstance(base_type, type) and is_dataclass(base_type):
        return _dataclass_from_dict(base_type, value)
    origin = get_origin(base_type)
    if origin in (list, tuple, ABCSequence):
        args = get_args(base_type)
        inner = args[0] if args else Any
        items = [_coerce_value(inner, v) for v in value]
        return tuple(items) if origin is tuple else items
    if origin is dict:
        return dict(value)
    if base_type in {str, int, float, bool}:
        return base_type(value)
    return value


def _strip_optional(typ: Any) -> Tuple[Any, bool]:
    """Strip ``None`` from ``Optional[X]`` / ``X | None`` annotations."""
    origin = get_origin(typ)
    if origin is Union or origin is types.UnionType:
        args = [arg for arg in get_args(typ) if arg is not type(None)]
        if len(args) == 1:
            return args[0], True
    return typ, False


__all__ = [
    "BatchConfig",
    "PolicyConfig",
    "LoggingConfig",
    "SpdxflowConfig",
    "load_config_from_path",
]
