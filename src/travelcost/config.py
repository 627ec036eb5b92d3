"""YAML configuration loader."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml


DEFAULT_SETTINGS_PATH = Path("backend/config/settings.yaml")
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@dataclass
class MapsSettings:
    api_key: str = ""
    base_url: str = "https://maps.googleapis.com/maps/api"
    timeout_seconds: float = 10.0


@dataclass
class Settings:
    data_dir: Path = Path("data")
    database_name: str = "travelcost.sqlite3"
    log_level: str = "INFO"
    excel_template_path: Path = Path("templates/Reisekostenabrechnung.xlsx")
    excel_mapping_path: Optional[Path] = None
    maps: MapsSettings = field(default_factory=MapsSettings)

    @property
    def database_path(self) -> Path:
        return self.data_dir / self.database_name

    @property
    def upload_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def export_dir(self) -> Path:
        return self.data_dir / "exports"


def load_settings(path: str | Path | None = None) -> Settings:
    """Load settings from a YAML file.

    Falls back to defaults if the file doesn't exist. The data directory, log
    level and maps API key can be overridden via environment variables.
    """
    settings_path = Path(path) if path is not None else DEFAULT_SETTINGS_PATH
    raw: dict[str, Any] = {}
    if settings_path.exists():
        with settings_path.open("r", encoding="utf-8") as settings_file:
            loaded = yaml.safe_load(settings_file) or {}
        if not isinstance(loaded, dict):
            msg = f"Settings file must contain a dictionary at root: {settings_path}"
            raise ValueError(msg)
        raw = loaded

    storage = raw.get("storage", {})
    export = raw.get("export", {})
    maps = raw.get("maps", {})
    defaults = Settings()

    return Settings(
        data_dir=Path(os.environ.get("TRAVELCOST_DATA_DIR") or storage.get("data_dir", defaults.data_dir)),
        database_name=storage.get("database_name", defaults.database_name),
        log_level=os.environ.get("TRAVELCOST_LOG_LEVEL") or raw.get("log_level", defaults.log_level),
        excel_template_path=Path(export.get("template_path", defaults.excel_template_path)),
        excel_mapping_path=Path(export["mapping_path"]) if export.get("mapping_path") else None,
        maps=MapsSettings(
            # config file → environment variable
            api_key=maps.get("api_key", "") or os.environ.get("GOOGLE_MAPS_API_KEY", ""),
            base_url=maps.get("base_url", MapsSettings.base_url),
            timeout_seconds=float(maps.get("timeout_seconds", MapsSettings.timeout_seconds)),
        ),
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
