from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CharacterInfo:
    name: str
    server: str

    def __post_init__(self) -> None:
        if not self.name or not self.server:
            msg = "CharacterInfo requires both name and server"
            raise ValueError(msg)

    @property
    def folder_name(self) -> str:
        return f"{self.name}_{self.server}"

    def data_folder(self, config_directory: Path) -> Path:
        return config_directory / self.folder_name


__all__ = ["CharacterInfo"]
