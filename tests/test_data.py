from __future__ import annotations

import pytest

from address_formatter.data import DATA_DIR_ENV, PACKAGE_DATA_DIR, AddressData, resolve_data_dir
from address_formatter.errors import DataError


def test_templates_are_keyed_by_country(data: AddressData) -> None:
    assert "default" in data.templates
    assert "NO" in data.templates
    assert not any(key.startswith("generic") for key in data.templates)
    assert data.template_for("ZZ") is data.templates["default"]
    assert data.template_for(None) is data.templates["default"]


def test_components_include_aliases(data: AddressData) -> None:
    assert data.aliases["town"] == "city"
    assert data.aliases["city"] == "city"
    assert {"attention", "country_code", "state_code", "district"} <= data.components


def test_resolve_data_dir(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv(DATA_DIR_ENV, raising=False)
    assert resolve_data_dir() == PACKAGE_DATA_DIR
    monkeypatch.setenv(DATA_DIR_ENV, str(tmp_path))
    assert resolve_data_dir() == tmp_path
    assert resolve_data_dir(tmp_path / "custom") == tmp_path / "custom"


def test_missing_data_files(tmp_path) -> None:
    with pytest.raises(DataError):
        AddressData.load(tmp_path)


def test_template_file_without_default(tmp_path) -> None:
    for name in ("components", "country_names", "state_codes", "county_codes", "country2lang", "abbreviations"):
        (tmp_path / f"{name}.yaml").write_text("", encoding="utf-8")
    (tmp_path / "templates.yaml").write_text("DE:\n  address_template: x\n", encoding="utf-8")
    with pytest.raises(DataError, match="no default"):
        AddressData.load(tmp_path)


def test_invalid_yaml(tmp_path) -> None:
    (tmp_path / "templates.yaml").write_text("default: [unclosed\n", encoding="utf-8")
    with pytest.raises(DataError, match="Invalid YAML"):
        AddressData.load(tmp_path)
