"""Pytest configuration and fixtures for SHIFT gateway tests."""

import logging
import os
from unittest.mock import patch

import pytest

from shift.config.settings import Settings


@pytest.fixture(autouse=True)
def mock_environment_variables():
    """Provide a complete, offline configuration for every test."""
    env_vars = {
        "LLM_PROVIDER": "openai",
        "OPENAI_API_KEY": "sk-test-key-for-testing-only",
        "OPENAI_MODEL": "gpt-4o-mini",
        "ANTHROPIC_API_KEY": "sk-ant-REDACTED",
        "HELIUS_API_KEY": "helius-test-key",
        "RPC_URL": "https://rpc.test.invalid",
        "LOG_LEVEL": "ERROR",
    }

    with patch.dict(os.environ, env_vars, clear=False):
        Settings.refresh_from_env()
        yield
    Settings.refresh_from_env()


# Disable logging to reduce noise during tests
logging.getLogger().setLevel(logging.ERROR)
