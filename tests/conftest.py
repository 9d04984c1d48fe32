"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from history.store import HistoryStore  # noqa: E402

CALM_OCEAN = {
    "name": "Calm Ocean Dawn",
    "colors": ["#0B3C5D", "#328CC1", "#8FC1E3", "#F7E7CE", "#F4A261"],
    "description": "Soft blues warming into a pale sunrise.",
}


class StubModel:
    """Model double that returns a canned payload and records the messages it got."""

    def __init__(self, payload: Any = None) -> None:
        self.payload = {"response": json.dumps(CALM_OCEAN)} if payload is None else payload
        self.calls: List[List[Dict[str, str]]] = []

    def run(self, messages: List[Dict[str, str]]) -> Any:
        self.calls.append(messages)
        return self.payload


class FailingModel:
    def __init__(self, exc: Optional[Exception] = None) -> None:
        self.exc = exc or ConnectionError("upstream unreachable")

    def run(self, messages: List[Dict[str, str]]) -> Any:
        raise self.exc


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Return the root directory of the project."""
    return Path(__file__).resolve().parent.parent


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for history shards during tests."""
    d = tmp_path / "history"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def store(tmp_data_dir: Path) -> HistoryStore:
    return HistoryStore(str(tmp_data_dir))


@pytest.fixture(scope="function")
def stub_model() -> StubModel:
    return StubModel()


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in list(os.environ):
        if var.startswith("PRISM__"):
            monkeypatch.delenv(var, raising=False)
    for var in ["PRISM_CONFIG", "CLOUDFLARE_ACCOUNT_ID", "CLOUDFLARE_API_TOKEN"]:
        monkeypatch.delenv(var, raising=False)
    yield
