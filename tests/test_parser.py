import pytest

from spdxflow.core.expressions import And, Or, SimpleLicense, spdx
from spdxflow.core.parser import ParseError, parse_expression


@pytest.mark.parametrize(
    "text, expected",
    [
        ("MIT", spdx("MIT")),
        ("MIT OR GPL", Or(spdx("MIT"), spdx("GPL"))),
        ("MIT and GPL", And(spdx("MIT"), spdx("GPL"))),
        ("MIT AND GPL OR Apache", Or(And(spdx("MIT"), spdx("GPL")), spdx("Apache"))),
        ("MIT OR GPL AND Apache", Or(spdx("MIT"), And(spdx("GPL"), spdx("Apache")))),
        ("MIT AND (GPL OR Apache)", And(spdx("MIT"), Or(spdx("GPL"), spdx("Apache")))),
        ("A OR B OR C", Or(Or(spdx("A"), spdx("B")), spdx("C"))),
        (
            "MIT OR (GPL with exception AND Apache)",
            Or(spdx("MIT"), And(spdx("GPL", "exception"), spdx("Apache"))),
        ),
        ("((A+)) WITH B", SimpleLicense("A", "B", or_later=True)),
        ("LicenseRef-acme:internal", spdx("LicenseRef-acme:internal")),
    ],
)
def test_parse_builds_expected_tree(text, expected):
    assert parse_expression(text) == expected


@pytest.mark.parametrize(
    "text",
    [
        "MIT",
        "MIT OR ISC",
        "(MIT OR ISC) AND Apache-2.0",
        "GPL-2.0-or-later WITH Classpath-exception-2.0 OR MIT",
        "A+ WITH B",
    ],
)
def test_rendered_expression_parses_back(text):
    assert str(parse_expression(text)) == text


@pytest.mark.parametrize(
    "text, message",
    [
        (
            "(MIT OR (GPL WITH exception AND Apache)",
            "Unclosed open parenthesis\n"
            "input: (MIT OR (GPL WITH exception AND Apache)\n"
            "       ^ error here",
        ),
        (
            "(MIT OR (GPL WITH exception AND Apache",
            "Unclosed open parenthesis\n"
            "input: (MIT OR (GPL WITH exception AND Apache\n"
            "               ^ error here",
        ),
        (
            "OR",
            "OR expression requires two arguments\n"
            "input: OR\n"
            "       ^^ error here",
        ),
        (
            "A OR",
            "OR expression requires two arguments\n"
            "input: A OR\n"
            "         ^^ error here",
        ),
        (
            "A WITH B WITH C",
            "Left argument of WITH must be a single license, got [A WITH B]\n"
            "input: A WITH B WITH C\n"
            "                ^__^ error here",
        ),
    ],
)
def test_parse_error_points_at_offending_token(text, message):
    with pytest.raises(ParseError) as excinfo:
        parse_expression(text)
    assert str(excinfo.value) == message


def test_with_applied_to_compound_expression_is_rejected():
    with pytest.raises(ParseError) as excinfo:
        parse_expression("(A+) WITH (B WITH C)")
    err = excinfo.value
    assert "[A+], [B WITH C]" in err.reason
    assert (err.start, err.end) == (5, 9)


@pytest.mark.parametrize(
    "text, start",
    [
        ("WITH", 0),
        ("OR B", 0),
        ("MIT)", 3),
        ("+", 0),
        ("(MIT OR ISC)+", 12),
    ],
)
def test_parse_error_offsets(text, start):
    with pytest.raises(ParseError) as excinfo:
        parse_expression(text)
    assert excinfo.value.start == start


def test_missing_operator_between_licenses():
    with pytest.raises(ParseError) as excinfo:
        parse_expression("MIT ISC")
    assert "missing AND/OR" in excinfo.value.reason
    assert excinfo.value.start == 4


@pytest.mark.parametrize("text", ["", "   "])
def test_empty_expression(text):
    with pytest.raises(ParseError, match="Expression is empty"):
        parse_expression(text)


def test_parse_error_is_value_error():
    with pytest.raises(ValueError):
        parse_expression("AND")
