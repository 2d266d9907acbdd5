"""Tests for environment-driven settings."""

from pathlib import Path

import pytest

from target_onchain.config import (
    COINBASE_ACCOUNT_SCHEMA, COINBASE_ATTESTER, DEFAULT_EAS_GRAPHQL_URL, Settings,
)

ENV_VARS = [
    "BASE_URL", "VERCEL_URL", "DATABASE_URL", "EAS_GRAPHQL_URL", "NEYNAR_API_URL",
    "NEYNAR_API_KEY", "HTTP_TIMEOUT", "RECEIPTS_XYZ_ALL_TIME_RUNNING_SCHEMA",
    "RECEIPTS_XYZ_ATTESTER", "COINBASE_ONCHAIN_VERIFICATION_ACCOUNT_SCHEMA",
    "STORES_PATH", "ALLOWED_ORIGINS", "TARGET_ONCHAIN_PRODUCTION",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults(clean_env):
    s = Settings.from_env()
    assert s.base_url == "http://localhost:3000"
    assert s.eas_graphql_url == DEFAULT_EAS_GRAPHQL_URL
    assert s.neynar_api_key == "NEYNAR_ONCHAIN_KIT"
    assert s.coinbase_account_schema == COINBASE_ACCOUNT_SCHEMA
    assert s.coinbase_attester == COINBASE_ATTESTER
    assert s.receipts_xyz_all_time_running_schema == ""
    assert s.http_timeout == 10.0
    assert not s.production


def test_base_url_strips_slash(clean_env):
    clean_env.setenv("BASE_URL", "https://frames.example.com/")
    assert Settings.from_env().base_url == "https://frames.example.com"


def test_vercel_fallback(clean_env):
    clean_env.setenv("VERCEL_URL", "target-onchain.vercel.app")
    assert Settings.from_env().base_url == "https://target-onchain.vercel.app"


def test_overrides_from_env(clean_env):
    clean_env.setenv("RECEIPTS_XYZ_ALL_TIME_RUNNING_SCHEMA", "0xrun")
    clean_env.setenv("COINBASE_ONCHAIN_VERIFICATION_ACCOUNT_SCHEMA", "0xacc")
    clean_env.setenv("ALLOWED_ORIGINS", "https://a.com, https://b.com,")
    clean_env.setenv("STORES_PATH", "/tmp/stores.json")
    clean_env.setenv("TARGET_ONCHAIN_PRODUCTION", "1")
    s = Settings.from_env()
    assert s.receipts_xyz_all_time_running_schema == "0xrun"
    assert s.coinbase_account_schema == "0xacc"
    assert s.allowed_origins == ["https://a.com", "https://b.com"]
    assert s.stores_path == Path("/tmp/stores.json")
    assert s.production


def test_bad_timeout_falls_back(clean_env):
    clean_env.setenv("HTTP_TIMEOUT", "soon")
    assert Settings.from_env().http_timeout == 10.0


def test_override_returns_copy():
    s = Settings()
    t = s.override(base_url="https://x")
    assert t.base_url == "https://x"
    assert s.base_url == "http://localhost:3000"
