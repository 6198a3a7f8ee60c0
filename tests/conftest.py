"""Shared fixtures for the scribe tests."""

import pytest

from scribe.config import ConfigManager

from .fakes import CharTokenizer, make_frame


@pytest.fixture
def tokenizer():
    return CharTokenizer()


@pytest.fixture
def loud_frame():
    return make_frame(0.5)


@pytest.fixture
def quiet_frame():
    return make_frame(0.001)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep a developer's .env from leaking into the tests."""
    for key in ConfigManager.DEFAULTS:
        monkeypatch.delenv(key, raising=False)
