"""Shared fixtures: config files written into a per-test directory."""

from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from flatconf import Config


@pytest.fixture
def write(tmp_path: Path):
    """write(name, text) -> Path; text is dedented."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(text), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def cfg():
    """A Config with watching disabled, closed after the test."""
    config = Config(watch=False)
    yield config
    config.close()
