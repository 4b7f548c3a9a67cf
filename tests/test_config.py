import logging
from pathlib import Path
from types import SimpleNamespace

import pytest

from client_integrity.config_loader import load_pipeline_config
from client_integrity.logging_utils import configure_logging, effective_level
from client_integrity.reconciler import build_reconciler

CONFIG_TEXT = """
inputs:
  rows_file: clients.xlsx
store:
  path: data/clients.json
outputs:
  dir: out
import:
  sheet_name: Clients
  fallback_year_min: 1800
  header_variants:
    phone: ["Cell Phone"]
relationships:
  reciprocal_types:
    Grandmother: Grandchild
logging:
  level: info
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def restore_root_level():
    root = logging.getLogger()
    level = root.level
    yield root
    root.setLevel(level)


def test_yaml_values_are_loaded(config_path):
    config = load_pipeline_config(SimpleNamespace(config=str(config_path)))
    assert config.inputs["rows_file"] == "clients.xlsx"
    assert config.store.path == Path("data/clients.json")
    assert config.outputs.dir == Path("out")
    assert config.import_.sheet_name == "Clients"
    assert config.import_.fallback_year_min == 1800
    assert config.import_.fallback_year_max == 2100
    assert config.import_.header_variants == {"phone": ["Cell Phone"]}
    assert config.relationships.reciprocal_types == {"Grandmother": "Grandchild"}
    assert config.logging.level == "INFO"


def test_cli_arguments_override_yaml(config_path):
    args = SimpleNamespace(
        config=str(config_path),
        store="other.json",
        out_dir="reports",
        sheet_name="2",
        rows_file="new.csv",
        log_level="debug",
    )
    config = load_pipeline_config(args)
    assert config.store.path == Path("other.json")
    assert config.outputs.dir == Path("reports")
    assert config.import_.sheet_name == 2
    assert config.inputs["rows_file"] == "new.csv"
    assert config.logging.level == "DEBUG"


def test_defaults_without_config():
    config = load_pipeline_config(SimpleNamespace())
    assert config.store.path.name == "clients.json"
    assert config.outputs.dir is None
    assert config.import_.sheet_name == 0
    assert config.logging.level == "WARNING"


def test_reconciler_follows_config(config_path):
    config = load_pipeline_config(SimpleNamespace(config=str(config_path)))
    reconciler = build_reconciler(config)
    row = reconciler.extractor.extract({"Name": "Ann Lee", "Cell Phone": "555 0101"}, row_number=2)
    assert row.phone == "555 0101"
    assert reconciler.extractor.date_normalizer.normalize("January 5 1850") == "1850-01-05"


def test_env_level_wins(config_path, monkeypatch, restore_root_level):
    config = load_pipeline_config(SimpleNamespace(config=str(config_path)))
    monkeypatch.setenv("CLIENT_INTEGRITY_LOG_LEVEL", "ERROR")
    configure_logging(config, level_override="DEBUG")
    assert restore_root_level.level == logging.ERROR


def test_override_beats_config_level(config_path, monkeypatch, restore_root_level):
    config = load_pipeline_config(SimpleNamespace(config=str(config_path)))
    monkeypatch.delenv("CLIENT_INTEGRITY_LOG_LEVEL", raising=False)
    configure_logging(config, level_override="debug")
    assert restore_root_level.level == logging.DEBUG
    configure_logging(config)
    assert restore_root_level.level == logging.INFO


def test_unknown_level_names_fall_back_to_warning(monkeypatch):
    monkeypatch.delenv("CLIENT_INTEGRITY_LOG_LEVEL", raising=False)
    config = load_pipeline_config(SimpleNamespace(log_level="chatty"))
    assert effective_level(config) == logging.WARNING
    assert effective_level(config, level_override="15") == 15
