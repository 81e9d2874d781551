from __future__ import annotations

from functools import cache
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from domain.character import CharacterInfo
from domain.providers import DataFolderProvider
from services.exporter import ExportFormat


class AppSettings(BaseSettings):
    config_directory: Path | None = None
    character_name: str | None = None
    character_server: str | None = None
    max_backup_files_count: int = Field(default=10, ge=0)
    export_file_type: ExportFormat = ExportFormat.CSV
    merge_threshold: int = Field(default=0, ge=0)
    one_way_merge: bool = False

    model_config = SettingsConfigDict(
        env_prefix="CURRENCY_TRACKER_", env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    @property
    def character(self) -> CharacterInfo | None:
        if not self.character_name or not self.character_server:
            return None
        return CharacterInfo(self.character_name, self.character_server)

    @property
    def data_folder(self) -> Path | None:
        character = self.character
        if self.config_directory is None or character is None:
            return None
        return character.data_folder(self.config_directory)


class SettingsDataFolderProvider(DataFolderProvider):
    def __init__(self, settings: AppSettings) -> None:
        self.settings = settings

    def current(self) -> Path | None:
        return self.settings.data_folder


@cache
def config() -> AppSettings:
    return AppSettings()
