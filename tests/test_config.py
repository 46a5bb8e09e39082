import json
from pathlib import Path

import pytest

from spdxflow.core.categories import LicenseCategory
from spdxflow.core.config import (
    BatchConfig,
    LoggingConfig,
    PolicyConfig,
    SpdxflowConfig,
    load_config_from_path,
)
from spdxflow.core.expressions import spdx
from spdxflow.core.log import DEFAULT_LOG_FORMAT
from spdxflow.core.policy import LicensePolicyInterpreter


def test_defaults_are_unbounded():
    cfg = SpdxflowConfig()

    assert cfg.batch.max_batch_size is None
    assert cfg.batch.max_workers is None
    assert cfg.batch.request_timeout is None
    assert cfg.policy.base == "asf"


def test_to_dict_skips_none_and_round_trips_through_json(tmp_path: Path):
    cfg = SpdxflowConfig()
    cfg.batch.max_batch_size = 16
    cfg.policy.licenses = {"LicenseRef-internal": "A"}

    data = cfg.to_dict()
    assert data["batch"] == {"max_batch_size": 16}
    assert "path" not in data["policy"]

    path = tmp_path / "cfg.json"
    assert cfg.to_json(path) == str(path)
    loaded = load_config_from_path(path)
    assert loaded.batch.max_batch_size == 16
    assert loaded.policy.licenses == {"LicenseRef-internal": "A"}


def test_load_toml_config(tmp_path: Path):
    path = tmp_path / "spdxflow.toml"
    path.write_text(
        "\n".join(
            [
                "[batch]",
                "max_batch_size = 32",
                "request_timeout = 2.5",
                "",
                "[policy]",
                'base = "EMPTY"',
                "",
                "[policy.licenses]",
                'MIT = "A"',
                "",
                "[logging]",
                'level = "DEBUG"',
            ]
        ),
        encoding="utf-8",
    )

    cfg = load_config_from_path(path)

    assert cfg.batch.max_batch_size == 32
    assert cfg.batch.request_timeout == 2.5
    assert cfg.policy.base == "empty"
    assert cfg.logging.level == "DEBUG"
    policy = cfg.policy.build_policy()
    assert dict(policy.licenses) == {"MIT": LicenseCategory.A}


def test_unknown_keys_are_rejected():
    with pytest.raises(ValueError, match="Unknown BatchConfig keys"):
        SpdxflowConfig.from_dict({"batch": {"max_size": 3}})
    with pytest.raises(ValueError, match="Unknown SpdxflowConfig keys"):
        SpdxflowConfig.from_dict({"pipeline": {}})


def test_values_are_coerced_to_field_types():
    cfg = SpdxflowConfig.from_dict({"batch": {"max_workers": "4", "request_timeout": 1}})

    assert cfg.batch.max_workers == 4
    assert isinstance(cfg.batch.request_timeout, float)


@pytest.mark.parametrize(
    "section",
    [
        {"batch": {"max_batch_size": 0}},
        {"batch": {"max_workers": -1}},
        {"batch": {"request_timeout": 0}},
        {"policy": {"base": "gnu"}},
    ],
)
def test_validate_rejects_bad_values(section):
    cfg = SpdxflowConfig.from_dict(section)
    with pytest.raises(ValueError):
        cfg.validate()


def test_load_config_rejects_unknown_extension(tmp_path: Path):
    path = tmp_path / "cfg.yaml"
    path.write_text("batch: {}", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported config extension"):
        load_config_from_path(path)


def test_build_policy_layers_file_then_inline_tables(tmp_path: Path):
    policy_file = tmp_path / "policy.json"
    policy_file.write_text(
        json.dumps({"licenses": {"JSON": "B", "Foo": "X"}, "overrides": {"MIT AND Foo": "A"}}),
        encoding="utf-8",
    )
    cfg = PolicyConfig(path=str(policy_file), licenses={"Foo": "B"})

    interp = LicensePolicyInterpreter(cfg.build_policy())

    assert interp.evaluate(spdx("MIT")) is LicenseCategory.A
    assert interp.evaluate(spdx("JSON")) is LicenseCategory.B
    assert interp.evaluate(spdx("Foo")) is LicenseCategory.B
    assert interp.evaluate(spdx("MIT") & spdx("Foo")) is LicenseCategory.A


def test_batch_config_validate_accepts_positive_limits():
    BatchConfig(max_batch_size=1, max_workers=1, request_timeout=0.01).validate()


def test_logging_config_apply(monkeypatch):
    calls = []
    monkeypatch.setattr("spdxflow.core.config.configure_logging", lambda **kw: calls.append(kw))

    LoggingConfig(level="DEBUG", propagate=True).apply()

    assert calls == [
        {
            "level": "DEBUG",
            "propagate": True,
            "fmt": DEFAULT_LOG_FORMAT,
            "logger_name": "spdxflow",
        }
    ]


def test_logging_config_defaults_keep_propagation():
    cfg = LoggingConfig()

    assert cfg.propagate is None
    assert "propagate" not in SpdxflowConfig().to_dict()["logging"]


def test_logging_config_rejects_unknown_level():
    with pytest.raises(ValueError, match="Unknown log level"):
        LoggingConfig(level="LOUD").apply()
    with pytest.raises(ValueError, match="Unknown log level"):
        SpdxflowConfig.from_dict({"logging": {"level": "LOUD"}}).validate()
