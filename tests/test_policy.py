import json
import logging

import pytest

from spdxflow.core.categories import LicenseCategory, better, worse
from spdxflow.core.expressions import And, Or, spdx
from spdxflow.core.policy import (
    ExceptionRule,
    LicensePolicy,
    LicensePolicyInterpreter,
    asf_policy,
    load_policy,
)

A, B, X, UNKNOWN = LicenseCategory.A, LicenseCategory.B, LicenseCategory.X, LicenseCategory.UNKNOWN

CLASSPATH = "Classpath-exception-2.0"


@pytest.fixture
def interpreter():
    return LicensePolicyInterpreter(asf_policy())


def test_category_order_puts_unknown_last():
    assert A < B < X < UNKNOWN
    assert sorted([UNKNOWN, X, A, B]) == [A, B, X, UNKNOWN]
    assert worse(A, X) is X
    assert better(UNKNOWN, B) is B


@pytest.mark.parametrize("name, expected", [("a", A), (" X ", X), ("unknown", UNKNOWN), (B, B)])
def test_category_parse(name, expected):
    assert LicenseCategory.parse(name) is expected


def test_category_parse_rejects_unknown_names():
    with pytest.raises(ValueError, match="Unknown license category"):
        LicenseCategory.parse("C")


@pytest.mark.parametrize(
    "expr, expected",
    [
        (spdx("MIT") | spdx("GPL-2.0-or-later"), A),
        (spdx("MIT") & spdx("GPL-2.0-or-later"), X),
        (spdx("MIT") & spdx("GPL-3.0-or-later", CLASSPATH), A),
        (spdx("MIT") & spdx("GPL-3.0-or-later"), X),
        (spdx("GPL-2.0-or-later", CLASSPATH), A),
        (spdx("Apache-2.0"), A),
        (spdx("MPL-2.0"), B),
    ],
)
def test_asf_policy_examples(interpreter, expr, expected):
    assert interpreter.evaluate(expr) is expected


def test_unknown_license_is_worst_for_and_ignored_for_or(interpreter):
    mystery = spdx("LicenseRef-mystery")

    assert interpreter.evaluate(mystery) is UNKNOWN
    assert interpreter.evaluate(spdx("MIT") & mystery) is UNKNOWN
    assert interpreter.evaluate(mystery | spdx("MPL-2.0")) is B
    assert interpreter.evaluate(mystery | mystery) is UNKNOWN


def test_none_evaluates_to_unknown(interpreter):
    assert interpreter.evaluate(None) is UNKNOWN


@pytest.mark.parametrize(
    "left, right",
    [
        ("MIT", "MPL-2.0"),
        ("MPL-2.0", "JSON"),
        ("JSON", "LicenseRef-x"),
        ("LicenseRef-x", "Apache-2.0"),
        ("GPL-3.0-only", "GPL-3.0-only"),
    ],
)
def test_and_is_worse_and_or_is_better(interpreter, left, right):
    lhs, rhs = spdx(left), spdx(right)
    l_cat, r_cat = interpreter.evaluate(lhs), interpreter.evaluate(rhs)

    assert interpreter.evaluate(And(lhs, rhs)) is worse(l_cat, r_cat)
    assert interpreter.evaluate(Or(lhs, rhs)) is better(l_cat, r_cat)


def test_evaluate_is_deterministic(interpreter):
    expr = (spdx("MIT") | spdx("JSON")) & spdx("GPL-2.0-only", CLASSPATH)
    results = {interpreter.evaluate(expr) for _ in range(10)}
    results.add(interpreter.evaluate((spdx("MIT") | spdx("JSON")) & spdx("GPL-2.0-only", CLASSPATH)))

    assert results == {A}


def test_exception_never_makes_a_license_worse():
    policy = LicensePolicy(
        licenses={"MIT": A, "GPL-2.0-only": X},
        exceptions={"Weird-exception": ExceptionRule(X)},
    )
    interp = LicensePolicyInterpreter(policy)

    assert interp.evaluate(spdx("MIT", "Weird-exception")) is A
    assert interp.evaluate(spdx("GPL-2.0-only", "Weird-exception")) is X


def test_unknown_or_non_applicable_exception_keeps_base_category(interpreter, caplog):
    with caplog.at_level(logging.DEBUG, logger="spdxflow"):
        assert interpreter.evaluate(spdx("GPL-2.0-only", "LLVM-exception")) is X
        assert interpreter.evaluate(spdx("MPL-2.0", CLASSPATH)) is B
    assert "LLVM-exception" in caplog.text


def test_or_later_prefers_plus_entry_then_plain_id():
    policy = LicensePolicy(licenses={"Apache-1.0": B, "Apache-1.0+": A, "MIT": A})
    interp = LicensePolicyInterpreter(policy)

    assert interp.evaluate(spdx("Apache-1.0", or_later=True)) is A
    assert interp.evaluate(spdx("Apache-1.0")) is B
    assert interp.evaluate(spdx("MIT", or_later=True)) is A


def test_overrides_win_at_any_level():
    expr = spdx("MIT") & spdx("JSON")
    policy = asf_policy().merged(LicensePolicy(overrides={str(expr): "B"}))
    interp = LicensePolicyInterpreter(policy)

    assert interp.evaluate(expr) is B
    assert interp.evaluate(expr | spdx("LicenseRef-x")) is B
    assert interp.evaluate(spdx("JSON")) is X


def test_evaluate_text_parses_first(interpreter):
    assert interpreter.evaluate_text("MIT AND (GPL-3.0-or-later WITH Classpath-exception-2.0)") is A


def test_policy_tables_are_read_only():
    policy = asf_policy()
    with pytest.raises(TypeError):
        policy.licenses["MIT"] = X  # type: ignore[index]


def test_policy_from_dict_accepts_grouped_licenses_and_exception_rules():
    policy = LicensePolicy.from_dict(
        {
            "licenses": {"A": ["MIT", "ISC"], "JSON": "x"},
            "exceptions": {"Foo-exception": {"category": "A", "applies_to": ["GPL-2.0-only"]}, "Bar": "B"},
        }
    )

    assert policy.licenses == {"MIT": A, "ISC": A, "JSON": X}
    assert policy.exceptions["Foo-exception"] == ExceptionRule(A, frozenset({"GPL-2.0-only"}))
    assert policy.exceptions["Bar"] == ExceptionRule(B)


def test_policy_from_dict_rejects_unknown_keys():
    with pytest.raises(ValueError, match="Unknown policy keys"):
        LicensePolicy.from_dict({"license": {}})


def test_policy_dict_round_trip():
    policy = asf_policy()
    assert LicensePolicy.from_dict(policy.to_dict()) == policy


def test_load_policy_json_and_toml(tmp_path):
    json_path = tmp_path / "policy.json"
    json_path.write_text(json.dumps({"licenses": {"Foo": "A"}}), encoding="utf-8")
    toml_path = tmp_path / "policy.toml"
    toml_path.write_text(
        '[licenses]\nFoo = "X"\n\n[exceptions.Foo-exception]\ncategory = "A"\n',
        encoding="utf-8",
    )

    assert load_policy(json_path).licenses["Foo"] is A
    toml_policy = load_policy(toml_path)
    assert toml_policy.licenses["Foo"] is X
    assert LicensePolicyInterpreter(toml_policy).evaluate(spdx("Foo", "Foo-exception")) is A


def test_load_policy_rejects_other_extensions(tmp_path):
    path = tmp_path / "policy.yaml"
    path.write_text("licenses: {}", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported policy extension"):
        load_policy(path)
