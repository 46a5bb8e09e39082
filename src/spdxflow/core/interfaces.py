# interfaces.py
# SPDX-License-Identifier: MIT
"""Protocols and shared data types for batch handlers and license lookups."""

from __future__ import annotations

from dataclasses import dataclass
from typing import (
    TYPE_CHECKING,
    Any,
    Mapping,
    Optional,
    Protocol,
    Sequence,
    Union,
    runtime_checkable,
)

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .batching import BatchRequest
    from .expressions import LicenseExpression


# -----------------------------------------------------------------------------
# Shared data types
# -----------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ComponentMetadata:
    """
    Declared license information for one component.

    Attributes:
        id (str): Component identifier, e.g. ``org.example:lib:1.0``.
        parent_id (str | None): Component to inherit the license from when
            ``license`` is missing (a parent POM, a workspace root).
        license (LicenseExpression | str | None): Declared license, either
            parsed or as SPDX text.
    """
    id: str
    parent_id: Optional[str] = None
    license: Union["LicenseExpression", str, None] = None


# -----------------------------------------------------------------------------
# Callables plugged into the batch engine
# -----------------------------------------------------------------------------

@runtime_checkable
class BatchHandler(Protocol):
    """
    Resolves one batch of requests.

    Implementations must call ``complete`` or ``fail`` exactly once on every
    request, either before returning or later from another thread. Raising
    fails every request that is still unresolved.
    """

    def __call__(self, requests: Sequence["BatchRequest"]) -> Any:
        ...


@runtime_checkable
class LicensePredictor(Protocol):
    """
    Bulk license-text classifier.

    Returns one prediction per input text, in order: SPDX expression text,
    an already parsed expression, or an exception that fails only that text.
    """

    def __call__(self, texts: Sequence[str]) -> Sequence[Union[str, "LicenseExpression", BaseException]]:
        ...


@runtime_checkable
class MetadataLoader(Protocol):
    """
    Bulk component metadata lookup.

    Missing components may be absent from the mapping or map to None.
    """

    def __call__(self, component_ids: Sequence[str]) -> Mapping[str, Optional[ComponentMetadata]]:
        ...


__all__ = [
    "ComponentMetadata",
    "BatchHandler",
    "LicensePredictor",
    "MetadataLoader",
]
