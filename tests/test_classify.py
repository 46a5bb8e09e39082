import pytest

from spdxflow.core.batching import BatchHandlerError
from spdxflow.core.categories import LicenseCategory
from spdxflow.core.classify import (
    ClassifiedLicense,
    DeclaredLicense,
    LicenseNotFoundError,
    classify_license_texts,
    resolve_declared_licenses,
)
from spdxflow.core.config import BatchConfig
from spdxflow.core.expressions import spdx
from spdxflow.core.interfaces import ComponentMetadata
from spdxflow.core.parser import ParseError
from spdxflow.core.policy import LicensePolicy

SAFE = BatchConfig(request_timeout=10.0)

TEXTS = {
    "Permission is hereby granted, free of charge": "MIT",
    "GNU GENERAL PUBLIC LICENSE Version 3": "GPL-3.0-only",
    "Mozilla Public License Version 2.0": "MPL-2.0",
}


def test_classify_makes_one_predictor_call_for_all_texts():
    calls = []

    def predict(texts):
        calls.append(list(texts))
        return [TEXTS[t] for t in texts]

    results = classify_license_texts(list(TEXTS), predict, config=SAFE)

    assert len(calls) == 1
    assert sorted(calls[0]) == sorted(TEXTS)
    assert [o.unwrap().category for o in results] == [LicenseCategory.A, LicenseCategory.X, LicenseCategory.B]
    first = results[0].unwrap()
    assert first == ClassifiedLicense(
        "Permission is hereby granted, free of charge", spdx("MIT"), LicenseCategory.A
    )


def test_classify_prediction_errors_fail_only_their_text():
    def predict(texts):
        predictions = []
        for text in texts:
            if "unsure" in text:
                predictions.append(RuntimeError("model unsure"))
            elif "garbled" in text:
                predictions.append("MIT AND ((")
            else:
                predictions.append("ISC")
        return predictions

    results = classify_license_texts(["unsure text", "plain text", "garbled text"], predict, config=SAFE)

    assert isinstance(results[0].error, RuntimeError)
    assert results[1].unwrap().expression == spdx("ISC")
    assert isinstance(results[2].error, ParseError)


def test_classify_accepts_parsed_predictions_and_custom_policy():
    policy = LicensePolicy(licenses={"Custom-1.0": "B"})
    results = classify_license_texts(["x"], lambda texts: [spdx("Custom-1.0")], policy=policy, config=SAFE)

    assert results[0].unwrap().category is LicenseCategory.B


def test_classify_predictor_length_mismatch_fails_batch():
    results = classify_license_texts(["a", "b"], lambda texts: ["MIT"], config=SAFE)

    assert all(isinstance(o.error, BatchHandlerError) for o in results)
    assert isinstance(results[0].error.__cause__, ValueError)


def _metadata_store(entries, calls):
    def load_batch(ids):
        calls.append(list(ids))
        return {i: entries[i] for i in ids if i in entries}

    return load_batch


def test_resolve_follows_parents_and_batches_by_depth():
    entries = {
        "app:core:1": ComponentMetadata("app:core:1", parent_id="app:parent:1"),
        "app:web:1": ComponentMetadata("app:web:1", parent_id="app:parent:1"),
        "lib:json:2": ComponentMetadata("lib:json:2", license="MIT"),
        "app:parent:1": ComponentMetadata("app:parent:1", license=spdx("Apache-2.0")),
    }
    calls = []

    results = resolve_declared_licenses(
        ["app:core:1", "app:web:1", "lib:json:2"], _metadata_store(entries, calls), config=SAFE
    )

    assert [o.unwrap() for o in results] == [
        DeclaredLicense("app:core:1", spdx("Apache-2.0"), "app:parent:1"),
        DeclaredLicense("app:web:1", spdx("Apache-2.0"), "app:parent:1"),
        DeclaredLicense("lib:json:2", spdx("MIT"), "lib:json:2"),
    ]
    assert len(calls) == 2
    assert sorted(calls[0]) == ["app:core:1", "app:web:1", "lib:json:2"]
    # Both children ask for the same parent; the loader sees it once.
    assert calls[1] == ["app:parent:1"]


@pytest.mark.parametrize(
    "entries, match",
    [
        ({}, "No metadata found for orphan"),
        ({"orphan": ComponentMetadata("orphan")}, "No license declared for orphan"),
        ({"orphan": ComponentMetadata("orphan", parent_id="gone")}, "No metadata found for gone"),
        (
            {
                "orphan": ComponentMetadata("orphan", parent_id="p"),
                "p": ComponentMetadata("p", parent_id="orphan"),
            },
            "Parent cycle",
        ),
    ],
)
def test_resolve_reports_missing_licenses_per_component(entries, match):
    entries = dict(entries)
    entries["ok"] = ComponentMetadata("ok", license="ISC")

    results = resolve_declared_licenses(["orphan", "ok"], _metadata_store(entries, []), config=SAFE)

    assert isinstance(results[0].error, LicenseNotFoundError)
    assert match in str(results[0].error)
    assert results[1].unwrap().license == spdx("ISC")
