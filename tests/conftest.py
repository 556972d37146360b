"""Shared fixtures: make lib/ importable and keep log output out of ~/.claude."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / 'lib'))

import notify_config  # noqa: E402


@pytest.fixture(autouse=True)
def _sandbox_log_file(tmp_path, monkeypatch):
    monkeypatch.setattr(notify_config, 'LOG_FILE', tmp_path / 'logs' / 'discord-notify.log')
