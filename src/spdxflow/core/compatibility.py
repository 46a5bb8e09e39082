# compatibility.py
# SPDX-License-Identifier: MIT
"""ALLOW / UNKNOWN / REJECT decisions for dependency licenses.

Where :mod:`spdxflow.core.policy` folds an expression into an ASF category,
this module answers the project-level question "may we ship this?", keeping
the human-readable reasons that led to each decision so a report can show
them next to the affected components.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from functools import total_ordering
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .categories import LicenseCategory
from .expressions import And, LicenseExpression, Or, SimpleLicense
from .log import get_logger
from .parser import parse_expression
from .policy import LicensePolicy, LicensePolicyInterpreter

log = get_logger(__name__)

__all__ = [
    "CompatibilityResult",
    "LicenseCompatibility",
    "ResolvedCompatibility",
    "LicenseCompatibilityInterpreter",
    "CompatibilityGroup",
    "CompatibilityReport",
    "from_policy",
    "verify_compatibility",
]

UNKNOWN_LICENSE = "Unknown license"


@total_ordering
class CompatibilityResult(Enum):
    ALLOW = "ALLOW"
    UNKNOWN = "UNKNOWN"
    REJECT = "REJECT"

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, CompatibilityResult):
            return NotImplemented
        return _ORDER[self] < _ORDER[other]

    def __str__(self) -> str:
        return self.value


_ORDER = {
    CompatibilityResult.ALLOW: 0,
    CompatibilityResult.UNKNOWN: 1,
    CompatibilityResult.REJECT: 2,
}


@dataclass(frozen=True, slots=True)
class LicenseCompatibility:
    """A user decision for one license expression, with an optional reason."""
    type: CompatibilityResult
    reason: str = ""

    def resolved_for(self, expr: LicenseExpression) -> ResolvedCompatibility:
        reason = self.reason or str(self.type)
        return ResolvedCompatibility(self.type, (f"{expr}: {reason}",))


@total_ordering
@dataclass(frozen=True, slots=True)
class ResolvedCompatibility:
    """Outcome of evaluating an expression, with every contributing reason."""
    type: CompatibilityResult
    reasons: Tuple[str, ...] = ()

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, ResolvedCompatibility):
            return NotImplemented
        return (self.type, self.reasons) < (other.type, other.reasons)

    def prefixed_reasons(self) -> Tuple[str, ...]:
        return tuple(f"{self.type}: {reason}" for reason in self.reasons)


def _merge_or(a: ResolvedCompatibility, b: ResolvedCompatibility) -> ResolvedCompatibility:
    if a.type is b.type:
        return ResolvedCompatibility(a.type, a.reasons + b.reasons)
    if a.type is CompatibilityResult.ALLOW:
        return a
    if b.type is CompatibilityResult.ALLOW:
        return b
    # REJECT OR UNKNOWN: the consumer might still pick the unknown side.
    return ResolvedCompatibility(CompatibilityResult.UNKNOWN, a.prefixed_reasons() + b.prefixed_reasons())


def _merge_and(a: ResolvedCompatibility, b: ResolvedCompatibility) -> ResolvedCompatibility:
    if a.type is b.type:
        return ResolvedCompatibility(a.type, a.reasons + b.reasons)
    if a.type is CompatibilityResult.ALLOW:
        return b
    if b.type is CompatibilityResult.ALLOW:
        return a
    return ResolvedCompatibility(CompatibilityResult.REJECT, a.prefixed_reasons() + b.prefixed_reasons())


class LicenseCompatibilityInterpreter:
    """Evaluate expressions against user-registered compatibility decisions.

    Args:
        resolved_cases (Mapping[LicenseExpression | str, LicenseCompatibility]):
            Decisions keyed by expression; string keys are parsed as SPDX
            expressions.

    Decisions are looked up by exact expression first, at every level. A
    compound expression without a decision is evaluated from its parts:

    * ``OR``: ALLOW wins; REJECT versus UNKNOWN gives UNKNOWN.
    * ``AND``: ALLOW yields the other side; REJECT versus UNKNOWN gives REJECT.

    A ``+`` leaf without its own decision falls back to the plain id; after
    that ``leaf_fallback`` (when given) may still decide any leaf.
    """

    def __init__(
        self,
        resolved_cases: Mapping[Union[LicenseExpression, str], LicenseCompatibility],
        *,
        leaf_fallback: Optional[Callable[[SimpleLicense], Optional[LicenseCompatibility]]] = None,
    ) -> None:
        cases: Dict[LicenseExpression, LicenseCompatibility] = {}
        for key, value in resolved_cases.items():
            expr = parse_expression(key) if isinstance(key, str) else key
            if not isinstance(value, LicenseCompatibility):
                raise TypeError(f"Expected LicenseCompatibility for {expr}; got {type(value).__name__}")
            cases[expr] = value
        self.resolved_cases: Mapping[LicenseExpression, LicenseCompatibility] = cases
        self.leaf_fallback = leaf_fallback

    def __repr__(self) -> str:
        return f"LicenseCompatibilityInterpreter(resolved={len(self.resolved_cases)})"

    def evaluate(self, expr: Optional[LicenseExpression]) -> ResolvedCompatibility:
        if expr is None:
            return ResolvedCompatibility(CompatibilityResult.REJECT, ("License is null",))
        case = self.resolved_cases.get(expr)
        if case is not None:
            return case.resolved_for(expr)
        if isinstance(expr, Or):
            return _merge_or(self.evaluate(expr.left), self.evaluate(expr.right))
        if isinstance(expr, And):
            return _merge_and(self.evaluate(expr.left), self.evaluate(expr.right))
        if isinstance(expr, SimpleLicense) and expr.or_later:
            plain = SimpleLicense(expr.id, expr.exception)
            case = self.resolved_cases.get(plain)
            if case is not None:
                return case.resolved_for(plain)
        if isinstance(expr, SimpleLicense) and self.leaf_fallback is not None:
            case = self.leaf_fallback(expr)
            if case is not None:
                return case.resolved_for(expr)
        return ResolvedCompatibility(CompatibilityResult.UNKNOWN, (f"No rules found for {expr}",))


def from_policy(
    policy: LicensePolicy,
    *,
    allow: Iterable[LicenseCategory] = (LicenseCategory.A,),
    reject: Iterable[LicenseCategory] = (LicenseCategory.X,),
    extra_cases: Optional[Mapping[Union[LicenseExpression, str], LicenseCompatibility]] = None,
) -> LicenseCompatibilityInterpreter:
    """Build an interpreter that allows and rejects whole policy categories.

    Every license id of an allowed category becomes an ALLOW case and every
    id of a rejected category a REJECT case, with a reason naming the
    category. Policy overrides become cases for their expressions, and
    leaves with no case (``WITH`` exceptions included) are categorized by
    :class:`LicensePolicyInterpreter`, so leaf decisions follow the policy's
    own categories. ``extra_cases`` are applied on top.
    """
    allowed = {LicenseCategory.parse(c) for c in allow}
    rejected = {LicenseCategory.parse(c) for c in reject}
    overlap = allowed & rejected
    if overlap:
        raise ValueError(f"Categories cannot be both allowed and rejected: {sorted(c.value for c in overlap)}")

    def decide(category: LicenseCategory) -> Optional[LicenseCompatibility]:
        if category in allowed:
            return LicenseCompatibility(CompatibilityResult.ALLOW, f"The ASF category {category} is allowed")
        if category in rejected:
            return LicenseCompatibility(CompatibilityResult.REJECT, f"The ASF category {category} is forbidden")
        return None

    cases: Dict[Union[LicenseExpression, str], LicenseCompatibility] = {}
    for license_id, category in policy.licenses.items():
        decision = decide(category)
        if decision is None:
            continue
        if license_id.endswith("+"):
            key: LicenseExpression = SimpleLicense(license_id[:-1], None, True)
        else:
            key = SimpleLicense(license_id)
        cases[key] = decision
    for text, category in policy.overrides.items():
        cases[parse_expression(text)] = decide(category) or LicenseCompatibility(
            CompatibilityResult.UNKNOWN, f"The ASF category {category} is neither allowed nor forbidden"
        )
    if extra_cases:
        for key, value in extra_cases.items():
            cases[parse_expression(key) if isinstance(key, str) else key] = value

    categorizer = LicensePolicyInterpreter(policy)
    return LicenseCompatibilityInterpreter(cases, leaf_fallback=lambda leaf: decide(categorizer.evaluate(leaf)))


@dataclass(slots=True)
class CompatibilityGroup:
    """Components sharing one resolution, bucketed by license text."""
    resolution: ResolvedCompatibility
    licenses: Dict[Optional[LicenseExpression], List[str]] = field(default_factory=dict)

    def render(self) -> str:
        resolution = self.resolution
        lines = [str(resolution.type), "  " + "\n  ".join(resolution.reasons)]
        width = max([len(str(resolution.type))] + [len(r) + 2 for r in resolution.reasons])
        lines.append("=" * width)
        for license_expr in sorted(self.licenses, key=_license_sort_key):
            lines.append("")
            lines.append(str(license_expr) if license_expr is not None else UNKNOWN_LICENSE)
            lines.extend(f"* {component}" for component in sorted(self.licenses[license_expr]))
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.resolution.type.value,
            "reasons": list(self.resolution.reasons),
            "licenses": {
                (str(expr) if expr is not None else UNKNOWN_LICENSE): sorted(components)
                for expr, components in sorted(self.licenses.items(), key=lambda kv: _license_sort_key(kv[0]))
            },
        }


def _license_sort_key(expr: Optional[LicenseExpression]) -> Tuple[int, str]:
    return (0, "") if expr is None else (1, str(expr))


@dataclass(slots=True)
class CompatibilityReport:
    """Verification result for a set of dependencies.

    Groups are ordered with UNKNOWN and REJECT first, then ALLOW; within each
    part by resolution.
    """
    groups: List[CompatibilityGroup] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return all(g.resolution.type is CompatibilityResult.ALLOW for g in self.groups)

    @property
    def failures(self) -> List[CompatibilityGroup]:
        return [g for g in self.groups if g.resolution.type is not CompatibilityResult.ALLOW]

    def error_message(self) -> str:
        """Render only the UNKNOWN and REJECT groups."""
        return "\n\n".join(g.render() for g in self.failures)

    def render(self) -> str:
        return "\n\n".join(g.render() for g in self.groups)

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "groups": [g.to_dict() for g in self.groups]}


def verify_compatibility(
    dependencies: Mapping[str, Union[LicenseExpression, str, None]],
    interpreter: LicenseCompatibilityInterpreter,
) -> CompatibilityReport:
    """Evaluate every dependency license and group the components.

    Args:
        dependencies (Mapping[str, LicenseExpression | str | None]): Component
            name to declared license. Strings are parsed; None means the
            license is not known.
        interpreter (LicenseCompatibilityInterpreter): Decision table.

    Returns:
        CompatibilityReport: Grouped results.
    """
    buckets: Dict[ResolvedCompatibility, Dict[Optional[LicenseExpression], List[str]]] = defaultdict(
        lambda: defaultdict(list)
    )
    for component, license_value in dependencies.items():
        expr = parse_expression(license_value) if isinstance(license_value, str) else license_value
        resolution = interpreter.evaluate(expr)
        if resolution.type is CompatibilityResult.ALLOW:
            log.debug("License compatibility for %s: %s -> %s", component, expr, resolution)
        else:
            log.info("License compatibility for %s: %s -> %s", component, expr, resolution)
        buckets[resolution][expr].append(component)

    ordered = sorted(buckets, key=lambda r: (r.type is CompatibilityResult.ALLOW, r))
    return CompatibilityReport(
        groups=[CompatibilityGroup(resolution, dict(buckets[resolution])) for resolution in ordered]
    )
