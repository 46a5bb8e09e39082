# policy.py
# SPDX-License-Identifier: MIT
"""Category policy tables and the expression interpreter that applies them.

A :class:`LicensePolicy` maps license ids to a :class:`LicenseCategory` and
exception ids to an :class:`ExceptionRule`. :class:`LicensePolicyInterpreter`
folds an expression tree into a single category:

* a leaf takes its table category, improved by an applicable exception;
* ``AND`` takes the worse side (every clause applies);
* ``OR`` takes the better side (the consumer picks);
* ids missing from the table evaluate to ``UNKNOWN``.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

try:  # pragma: no cover - optional dependency
    import tomllib  # Python 3.11+
except ModuleNotFoundError:  # pragma: no cover
    try:
        import tomli as tomllib  # type: ignore[assignment]
    except Exception:  # pragma: no cover
        tomllib = None  # type: ignore[assignment]

from .categories import (
    ASF_CATEGORY_A,
    ASF_CATEGORY_B,
    ASF_CATEGORY_X,
    ASF_EXCEPTIONS,
    LicenseCategory,
    better,
    worse,
)
from .expressions import And, LicenseExpression, Or, SimpleLicense
from .log import get_logger
from .parser import parse_expression

log = get_logger(__name__)

__all__ = [
    "ExceptionRule",
    "LicensePolicy",
    "LicensePolicyInterpreter",
    "asf_policy",
    "load_policy",
]


@dataclass(frozen=True, slots=True)
class ExceptionRule:
    """How a ``WITH`` exception adjusts the license it qualifies.

    Attributes:
        category (LicenseCategory): Best category the exception can grant.
            The qualified license never ends up worse than without it.
        applies_to (frozenset[str] | None): License ids the exception is
            meaningful for; None means any license.
    """

    category: LicenseCategory
    applies_to: frozenset[str] | None = None

    def applies(self, license_id: str) -> bool:
        return self.applies_to is None or license_id in self.applies_to

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"category": self.category.value}
        if self.applies_to is not None:
            data["applies_to"] = sorted(self.applies_to)
        return data

    @classmethod
    def from_value(cls, value: Any) -> ExceptionRule:
        """Build a rule from ``"A"`` or ``{"category": "A", "applies_to": [...]}``."""
        if isinstance(value, ExceptionRule):
            return value
        if isinstance(value, (str, LicenseCategory)):
            return cls(LicenseCategory.parse(value))
        if isinstance(value, Mapping):
            if "category" not in value:
                raise ValueError(f"Exception rule needs a 'category' field: {dict(value)!r}")
            applies_to = value.get("applies_to")
            return cls(
                LicenseCategory.parse(value["category"]),
                frozenset(applies_to) if applies_to is not None else None,
            )
        raise TypeError(f"Unsupported exception rule: {value!r}")


@dataclass(frozen=True, slots=True)
class LicensePolicy:
    """Static classification tables.

    Attributes:
        licenses (Mapping[str, LicenseCategory]): License id to category.
            A ``<id>+`` key classifies the or-later form separately.
        exceptions (Mapping[str, ExceptionRule]): Exception id to rule.
        overrides (Mapping[str, LicenseCategory]): Rendered expression to
            category; consulted before any other rule at every level.
    """

    licenses: Mapping[str, LicenseCategory] = field(default_factory=dict)
    exceptions: Mapping[str, ExceptionRule] = field(default_factory=dict)
    overrides: Mapping[str, LicenseCategory] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the tables so a shared policy cannot drift between runs.
        object.__setattr__(
            self,
            "licenses",
            MappingProxyType({k: LicenseCategory.parse(v) for k, v in self.licenses.items()}),
        )
        object.__setattr__(
            self,
            "exceptions",
            MappingProxyType({k: ExceptionRule.from_value(v) for k, v in self.exceptions.items()}),
        )
        object.__setattr__(
            self,
            "overrides",
            MappingProxyType({k: LicenseCategory.parse(v) for k, v in self.overrides.items()}),
        )

    def merged(self, other: LicensePolicy) -> LicensePolicy:
        """Return a policy with ``other``'s entries layered over this one."""
        return LicensePolicy(
            licenses={**self.licenses, **other.licenses},
            exceptions={**self.exceptions, **other.exceptions},
            overrides={**self.overrides, **other.overrides},
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "licenses": {k: v.value for k, v in sorted(self.licenses.items())},
            "exceptions": {k: v.to_dict() for k, v in sorted(self.exceptions.items())},
            "overrides": {k: v.value for k, v in sorted(self.overrides.items())},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> LicensePolicy:
        """Parse the ``licenses`` / ``exceptions`` / ``overrides`` tables.

        ``licenses`` may also be given grouped by category, e.g.
        ``{"A": ["MIT", "ISC"], "X": ["JSON"]}``.
        """
        if not data:
            return cls()
        unknown = set(data) - {"licenses", "exceptions", "overrides"}
        if unknown:
            raise ValueError(f"Unknown policy keys: {sorted(unknown)}")
        return cls(
            licenses=_license_table(data.get("licenses") or {}),
            exceptions=dict(data.get("exceptions") or {}),
            overrides=dict(data.get("overrides") or {}),
        )


def _license_table(raw: Mapping[str, Any]) -> dict[str, LicenseCategory]:
    table: dict[str, LicenseCategory] = {}
    for key, value in raw.items():
        if isinstance(value, (list, tuple, set, frozenset)):
            category = LicenseCategory.parse(key)
            for license_id in value:
                table[str(license_id)] = category
        else:
            table[str(key)] = LicenseCategory.parse(value)
    return table


def asf_policy() -> LicensePolicy:
    """Return the ASF 3rd-party license policy table."""
    licenses: dict[str, LicenseCategory] = {}
    for ids, category in (
        (ASF_CATEGORY_X, LicenseCategory.X),
        (ASF_CATEGORY_B, LicenseCategory.B),
        (ASF_CATEGORY_A, LicenseCategory.A),
    ):
        for license_id in ids:
            licenses[license_id] = category
    exceptions = {
        exc_id: ExceptionRule(category, applies_to)
        for exc_id, (category, applies_to) in ASF_EXCEPTIONS.items()
    }
    return LicensePolicy(licenses=licenses, exceptions=exceptions)


def load_policy(path: str | Path) -> LicensePolicy:
    """Load a :class:`LicensePolicy` from a ``.json`` or ``.toml`` file.

    Raises:
        ValueError: If the extension is not supported.
        RuntimeError: If TOML is requested but no TOML parser is available.
    """
    p = Path(path)
    suffix = p.suffix.lower()
    if suffix == ".json":
        data = json.loads(p.read_text(encoding="utf-8"))
    elif suffix == ".toml":
        if tomllib is None:
            raise RuntimeError(
                "TOML support requires Python 3.11+ (tomllib) or installing the 'tomli' package."
            )
        data = tomllib.loads(p.read_text(encoding="utf-8"))
    else:
        raise ValueError(f"Unsupported policy extension {p.suffix!r}; expected .toml or .json.")
    if not isinstance(data, Mapping):
        raise TypeError(f"Policy document must be a mapping; got {type(data).__name__}.")
    return LicensePolicy.from_dict(data)


class LicensePolicyInterpreter:
    """Evaluate license expressions against a :class:`LicensePolicy`.

    The interpreter holds no mutable state; evaluating the same
    expression twice always yields the same category.
    """

    def __init__(self, policy: LicensePolicy | None = None) -> None:
        self.policy = policy if policy is not None else asf_policy()

    def __repr__(self) -> str:
        return (
            f"LicensePolicyInterpreter(licenses={len(self.policy.licenses)}, "
            f"exceptions={len(self.policy.exceptions)}, overrides={len(self.policy.overrides)})"
        )

    def evaluate(self, expr: LicenseExpression | None) -> LicenseCategory:
        """Return the category of ``expr``; None evaluates to UNKNOWN."""
        if expr is None:
            return LicenseCategory.UNKNOWN
        if self.policy.overrides:
            override = self.policy.overrides.get(str(expr))
            if override is not None:
                return override
        if isinstance(expr, SimpleLicense):
            return self._evaluate_leaf(expr)
        if isinstance(expr, And):
            return worse(self.evaluate(expr.left), self.evaluate(expr.right))
        if isinstance(expr, Or):
            return better(self.evaluate(expr.left), self.evaluate(expr.right))
        raise TypeError(f"Unsupported expression node: {type(expr).__name__}")

    def evaluate_text(self, text: str) -> LicenseCategory:
        """Parse ``text`` as an SPDX expression and evaluate it."""
        return self.evaluate(parse_expression(text))

    def _evaluate_leaf(self, leaf: SimpleLicense) -> LicenseCategory:
        licenses = self.policy.licenses
        base = None
        if leaf.or_later:
            base = licenses.get(leaf.id + "+")
        if base is None:
            base = licenses.get(leaf.id, LicenseCategory.UNKNOWN)
        if leaf.exception is None:
            return base
        rule = self.policy.exceptions.get(leaf.exception)
        if rule is None:
            log.debug("No rule for exception %s; keeping %s for %s", leaf.exception, base, leaf.id)
            return base
        if not rule.applies(leaf.id):
            log.debug("Exception %s does not apply to %s", leaf.exception, leaf.id)
            return base
        return better(base, rule.category)
