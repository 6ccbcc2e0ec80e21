"""Pytest configuration and fixtures."""

import os

import pytest

# Settings are read at import time by some modules; set before collection
os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-key")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")
os.environ.setdefault("ENGINE_ENV", "test")


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Set up test environment variables."""
    os.environ["SUPABASE_URL"] = "https://test.supabase.co"
    os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-key"
    os.environ["OPENAI_API_KEY"] = "test-openai-key"
    os.environ["ENGINE_ENV"] = "test"


@pytest.fixture
def fake_supabase():
    from tests.fakes.fake_supabase import FakeSupabase

    return FakeSupabase()
