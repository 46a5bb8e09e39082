# parser.py
# SPDX-License-Identifier: MIT
"""SPDX license expression parser.

Converts text such as ``MIT OR (GPL-2.0-or-later WITH Classpath-exception-2.0)``
into :mod:`spdxflow.core.expressions` trees using the shunting-yard
algorithm. Precedence from tightest to loosest is ``+``, ``WITH``, ``AND``,
``OR``; operators are case-insensitive and left-associative.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import IntEnum

from .expressions import And, LicenseExpression, Or, SimpleLicense

__all__ = ["ParseError", "parse_expression"]

_TOKEN_RE = re.compile(r"[-A-Za-z0-9_.:]+|[()+]")


class _TokenType(IntEnum):
    # Operator values double as precedence.
    LPAREN = 0
    LITERAL = 1
    OR = 2
    AND = 3
    WITH = 4
    PLUS = 5
    RPAREN = 6


_KEYWORDS = {
    "(": _TokenType.LPAREN,
    ")": _TokenType.RPAREN,
    "+": _TokenType.PLUS,
    "WITH": _TokenType.WITH,
    "AND": _TokenType.AND,
    "OR": _TokenType.OR,
}


@dataclass(frozen=True, slots=True)
class _Token:
    type: _TokenType
    start: int
    end: int
    value: str


class ParseError(ValueError):
    """Raised for malformed expressions; the message points at the token.

    Attributes:
        expression (str): The full input text.
        start (int): Offset of the first offending character.
        end (int): Offset one past the last offending character.
    """

    def __init__(self, message: str, expression: str, start: int = 0, end: int | None = None):
        self.reason = message
        self.expression = expression
        self.start = start
        self.end = start + 1 if end is None else max(end, start + 1)
        super().__init__(self._render())

    def _render(self) -> str:
        width = self.end - self.start
        if width <= 1:
            marker = "^"
        else:
            marker = "^" + "_" * (width - 2) + "^"
        pad = " " * len("input: ")
        return (
            f"{self.reason}\n"
            f"input: {self.expression}\n"
            f"{pad}{' ' * self.start}{marker} error here"
        )


def _tokenize(text: str) -> list[_Token]:
    tokens = []
    for match in _TOKEN_RE.finditer(text):
        value = match.group(0)
        kind = _KEYWORDS.get(value.upper(), _TokenType.LITERAL)
        tokens.append(_Token(kind, match.start(), match.end(), value))
    return tokens


def _to_rpn(text: str, tokens: list[_Token]) -> list[_Token]:
    operators: list[_Token] = []
    output: list[_Token] = []
    for tok in tokens:
        if tok.type is _TokenType.LITERAL:
            output.append(tok)
        elif tok.type is _TokenType.LPAREN:
            operators.append(tok)
        elif tok.type is _TokenType.RPAREN:
            while operators and operators[-1].type is not _TokenType.LPAREN:
                output.append(operators.pop())
            if not operators:
                raise ParseError(f"Unmatched closing parenthesis at offset {tok.start}", text, tok.start, tok.end)
            operators.pop()
        else:
            while operators and operators[-1].type >= tok.type:
                output.append(operators.pop())
            operators.append(tok)
    output.extend(reversed(operators))
    return output


def parse_expression(text: str) -> LicenseExpression:
    """Parse an SPDX license expression.

    Args:
        text (str): Expression text, e.g. ``"MIT AND (Apache-2.0 OR BSD-3-Clause)"``.

    Returns:
        LicenseExpression: Parsed expression tree.

    Raises:
        ParseError: If the text is empty or malformed.
    """
    tokens = _tokenize(text)
    rpn = _to_rpn(text, tokens)
    stack: list[tuple[LicenseExpression, _Token]] = []
    i = 0
    while i < len(rpn):
        tok = rpn[i]
        i += 1
        kind = tok.type
        if kind is _TokenType.LITERAL:
            if i < len(rpn) and rpn[i].type is _TokenType.WITH:
                # The literal just pushed is the exception of a WITH pair.
                with_tok = rpn[i]
                i += 1
                if not stack:
                    raise ParseError(
                        "WITH requires a license on its left-hand side", text, with_tok.start, with_tok.end
                    )
                lhs, lhs_tok = stack.pop()
                if not isinstance(lhs, SimpleLicense) or lhs.exception is not None:
                    raise ParseError(
                        f"Left argument of WITH must be a single license, got [{lhs}]",
                        text,
                        with_tok.start,
                        with_tok.end,
                    )
                stack.append((lhs.with_exception(tok.value), lhs_tok))
            else:
                stack.append((SimpleLicense(tok.value), tok))
        elif kind in (_TokenType.AND, _TokenType.OR):
            if len(stack) < 2:
                raise ParseError(f"{kind.name} expression requires two arguments", text, tok.start, tok.end)
            right, _ = stack.pop()
            left, left_tok = stack.pop()
            node = And(left, right) if kind is _TokenType.AND else Or(left, right)
            stack.append((node, left_tok))
        elif kind is _TokenType.WITH:
            args = ", ".join(f"[{expr}]" for expr, _ in stack[-2:]) or "none"
            raise ParseError(
                f"WITH must join a single license and an exception id; arguments were {args}",
                text,
                tok.start,
                tok.end,
            )
        elif kind is _TokenType.PLUS:
            if not stack:
                raise ParseError("'+' must follow a license id", text, tok.start, tok.end)
            lhs, lhs_tok = stack.pop()
            if not isinstance(lhs, SimpleLicense) or lhs.or_later or lhs.exception is not None:
                raise ParseError(f"'+' can only be applied to a license id, got [{lhs}]", text, tok.start, tok.end)
            stack.append((SimpleLicense(lhs.id, None, True), lhs_tok))
        elif kind is _TokenType.LPAREN:
            raise ParseError("Unclosed open parenthesis", text, tok.start, tok.end)
        else:  # pragma: no cover - RPAREN never reaches the output queue
            raise ParseError("Unexpected closing parenthesis", text, tok.start, tok.end)

    if not stack:
        raise ParseError("Expression is empty", text, 0, max(len(text), 1))
    if len(stack) > 1:
        _, extra_tok = stack[1]
        rendered = ", ".join(f"[{expr}]" for expr, _ in stack)
        raise ParseError(
            f"Multiple expressions without an operator (missing AND/OR?): {rendered}",
            text,
            extra_tok.start,
            extra_tok.end,
        )
    return stack[0][0]
