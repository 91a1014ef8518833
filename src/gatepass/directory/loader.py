"""Directory loader for directory.yaml."""

from __future__ import annotations

from pathlib import Path

import yaml

from gatepass.directory.models import DirectoryConfig


def load_directory(path: str) -> DirectoryConfig:
    directory_path = Path(path)
    if not directory_path.exists():
        raise FileNotFoundError(f"Directory file not found: {directory_path}")
    with directory_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return DirectoryConfig.from_yaml(data)
