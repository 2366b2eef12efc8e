"""Tests for the data file bootstrap script."""

from __future__ import annotations

import json

import pytest

from shop_ledger import constants, data_manager, setup_store


def test_create_data_file_writes_empty_collections(tmp_path):
    destination = setup_store.create_data_file(tmp_path / "data" / "ledger.json")

    document = json.loads(destination.read_text(encoding="utf-8"))
    assert document[data_manager.SCHEMA_KEY] == constants.EXPECTED_SCHEMA_VERSION
    for name in constants.CollectionName:
        assert document[name.value] == []


def test_create_data_file_refuses_to_overwrite(tmp_path):
    destination = tmp_path / "ledger.json"
    destination.write_text("{}", encoding="utf-8")

    with pytest.raises(FileExistsError):
        setup_store.create_data_file(destination)

    setup_store.create_data_file(destination, overwrite=True)
    assert "products" in json.loads(destination.read_text(encoding="utf-8"))


def test_write_config_produces_parseable_settings(tmp_path):
    config_path = setup_store.write_config(tmp_path / "config.ini", shop_name="Corner Store")

    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)

    assert settings.shop_name == "Corner Store"
    assert settings.data_file == (tmp_path / setup_store.DEFAULT_DATA_FILE).resolve()
    assert settings.loan_interest_rate == constants.DEFAULT_LOAN_INTEREST_RATE
    assert "DataFile" in config_path.read_text(encoding="utf-8")


def test_main_bootstraps_from_empty_directory(tmp_path, capsys):
    config_path = tmp_path / "config.ini"

    exit_code = setup_store.main(["--config", str(config_path), "--create-config", "--shop-name", "Kiosk"])

    assert exit_code == 0
    assert (tmp_path / setup_store.DEFAULT_DATA_FILE).exists()
    assert "[SUCCESS]" in capsys.readouterr().out


def test_main_reports_existing_data_file(config_factory, capsys):
    bundle = config_factory()

    exit_code = setup_store.main(["--config", str(bundle.config_path)])

    assert exit_code == 1
    output = capsys.readouterr().out
    assert "[ERROR]" in output
    assert "--force" in output


def test_main_reports_missing_config(tmp_path, capsys):
    exit_code = setup_store.main(["--config", str(tmp_path / "missing.ini")])

    assert exit_code == 1
    assert "[ERROR]" in capsys.readouterr().out
