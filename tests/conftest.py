from pathlib import Path
from unittest.mock import MagicMock

import pytest

ENTRIES_DIR = Path(__file__).parent / "entries"


@pytest.fixture
def files_entry_path():
    return ENTRIES_DIR / "org.example.Files.desktop"


@pytest.fixture
def files_entry_text(files_entry_path):
    return files_entry_path.read_text(encoding="utf-8")


@pytest.fixture
def logger():
    return MagicMock()


@pytest.fixture
def isolated_xdg(tmp_path, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    return tmp_path
