from pathlib import Path

import pytest

from travelcost.config import Settings, load_settings


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("TRAVELCOST_DATA_DIR", "TRAVELCOST_LOG_LEVEL", "GOOGLE_MAPS_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_missing_file_gives_defaults(tmp_path):
    settings = load_settings(tmp_path / "missing.yaml")
    assert settings == Settings()
    assert settings.database_path == Path("data") / "travelcost.sqlite3"
    assert settings.upload_dir == Path("data") / "uploads"
    assert settings.excel_mapping_path is None


def test_yaml_values_are_loaded(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text(
        "log_level: DEBUG\n"
        "storage:\n"
        "  data_dir: /var/lib/travelcost\n"
        "  database_name: costs.db\n"
        "export:\n"
        "  template_path: vorlagen/abrechnung.xlsx\n"
        "  mapping_path: vorlagen/mapping.yaml\n"
        "maps:\n"
        "  api_key: from-file\n"
        "  timeout_seconds: 3\n",
        encoding="utf-8",
    )

    settings = load_settings(path)

    assert settings.log_level == "DEBUG"
    assert settings.database_path == Path("/var/lib/travelcost/costs.db")
    assert settings.export_dir == Path("/var/lib/travelcost/exports")
    assert settings.excel_template_path == Path("vorlagen/abrechnung.xlsx")
    assert settings.excel_mapping_path == Path("vorlagen/mapping.yaml")
    assert settings.maps.api_key == "from-file"
    assert settings.maps.timeout_seconds == 3.0


def test_environment_overrides(tmp_path, monkeypatch):
    path = tmp_path / "settings.yaml"
    path.write_text("storage:\n  data_dir: data\nmaps:\n  api_key: ''\n", encoding="utf-8")
    monkeypatch.setenv("TRAVELCOST_DATA_DIR", str(tmp_path / "custom"))
    monkeypatch.setenv("TRAVELCOST_LOG_LEVEL", "WARNING")
    monkeypatch.setenv("GOOGLE_MAPS_API_KEY", "from-env")

    settings = load_settings(path)

    assert settings.data_dir == tmp_path / "custom"
    assert settings.log_level == "WARNING"
    assert settings.maps.api_key == "from-env"


def test_settings_root_must_be_a_dictionary(tmp_path):
    path = tmp_path / "settings.yaml"
    path.write_text("- nope\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_settings(path)
