# expressions.py
# SPDX-License-Identifier: MIT
"""Immutable SPDX license expression trees.

An expression is either a :class:`SimpleLicense` leaf (a license id,
optionally ``WITH`` an exception) or a binary :class:`And` / :class:`Or`
node. Nodes compare structurally and are hashable, so they can key
resolution tables. Combining expressions never simplifies: ``a & b & c``
is ``And(And(a, b), c)``.

Examples:
    >>> mit = spdx("MIT")
    >>> gpl = spdx("GPL-2.0-or-later").with_exception("Classpath-exception-2.0")
    >>> str(mit | gpl)
    'MIT OR GPL-2.0-or-later WITH Classpath-exception-2.0'
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass

__all__ = [
    "LicenseExpression",
    "SimpleLicense",
    "And",
    "Or",
    "spdx",
    "iter_leaves",
]


class LicenseExpression:
    """Base class for expression nodes; provides the combinators."""

    __slots__ = ()

    def and_(self, other: LicenseExpression) -> And:
        return And(self, _as_expression(other))

    def or_(self, other: LicenseExpression) -> Or:
        return Or(self, _as_expression(other))

    def __and__(self, other: LicenseExpression) -> And:
        return self.and_(other)

    def __or__(self, other: LicenseExpression) -> Or:
        return self.or_(other)


@dataclass(frozen=True, slots=True)
class SimpleLicense(LicenseExpression):
    """A single license, optionally qualified by an exception.

    Attributes:
        id (str): License identifier, e.g. ``MIT`` or ``LicenseRef-foo``.
        exception (str | None): Exception identifier for ``WITH``.
        or_later (bool): True for the SPDX ``+`` suffix.
    """

    id: str
    exception: str | None = None
    or_later: bool = False

    def __post_init__(self) -> None:
        if not self.id or not self.id.strip():
            raise ValueError("License id must be a non-empty string")
        if self.exception is not None and not self.exception.strip():
            raise ValueError("Exception id must be a non-empty string when set")

    def with_exception(self, exception: str) -> SimpleLicense:
        """Return a copy of this license qualified ``WITH exception``."""
        if self.exception is not None:
            raise TypeError(f"{self} already carries an exception")
        return SimpleLicense(self.id, exception, self.or_later)

    def __str__(self) -> str:
        text = self.id + ("+" if self.or_later else "")
        if self.exception is not None:
            text += f" WITH {self.exception}"
        return text


@dataclass(frozen=True, slots=True)
class And(LicenseExpression):
    """Conjunction: the consumer must comply with both sides."""

    left: LicenseExpression
    right: LicenseExpression

    def with_exception(self, exception: str):
        raise TypeError(f"WITH applies to a single license, not to {self}")

    def __str__(self) -> str:
        return f"{_wrap_or(self.left)} AND {_wrap_or(self.right)}"


@dataclass(frozen=True, slots=True)
class Or(LicenseExpression):
    """Disjunction: the consumer may pick either side."""

    left: LicenseExpression
    right: LicenseExpression

    def with_exception(self, exception: str):
        raise TypeError(f"WITH applies to a single license, not to {self}")

    def __str__(self) -> str:
        return f"{self.left} OR {self.right}"


def spdx(id: str, exception: str | None = None, *, or_later: bool = False) -> SimpleLicense:
    """Build a :class:`SimpleLicense` leaf."""
    return SimpleLicense(id, exception, or_later)


def iter_leaves(expr: LicenseExpression) -> Iterator[SimpleLicense]:
    """Yield the leaves of ``expr`` from left to right."""
    stack = [expr]
    while stack:
        node = stack.pop()
        if isinstance(node, SimpleLicense):
            yield node
        elif isinstance(node, (And, Or)):
            stack.append(node.right)
            stack.append(node.left)
        else:
            raise TypeError(f"Unexpected expression node: {type(node).__name__}")


def _as_expression(value: LicenseExpression) -> LicenseExpression:
    if not isinstance(value, LicenseExpression):
        raise TypeError(f"Expected a LicenseExpression, got {type(value).__name__}")
    return value


def _wrap_or(expr: LicenseExpression) -> str:
    # AND binds tighter than OR, so only OR operands need parentheses.
    if isinstance(expr, Or):
        return f"({expr})"
    return str(expr)
