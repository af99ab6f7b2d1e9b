from __future__ import annotations

import pytest

from caltrack.config import load_entitlement_config


def test_defaults_match_beta_program():
    config = load_entitlement_config({})

    assert config.cache_ttl_seconds == 86_400
    assert config.cache_ttl_ms == 86_400_000
    assert config.source_timeout_seconds == 5.0
    assert config.daily_free_scans == 5
    assert config.beta_program == "internal_testing"
    assert config.installer_package == "com.android.vending"
    assert "internal_testing_signature" in config.beta_signatures
    assert config.beta_build_markers == ("beta", "internal")
    assert config.allow_list_url is None
    assert config.auth_jwt_secret is None
    assert config.auth_jwt_algorithm == "HS256"
    assert config.local_store_path is None
    assert config.db_config["port"] == 5432


def test_environment_overrides():
    config = load_entitlement_config(
        {
            "ENTITLEMENT_CACHE_TTL_SECONDS": "3600",
            "ENTITLEMENT_SOURCE_TIMEOUT": "2.5",
            "FREE_DAILY_SCANS": "3",
            "BETA_SIGNATURES": "abc, def ,",
            "BETA_ALLOW_LIST_URL": "https://functions.example.com/check",
            "APP_INSTALLER_PACKAGE": "com.android.vending",
            "APP_VERSION_NAME": "2.0.0-internal",
            "DB_PORT": "6543",
            "AUTH_JWT_SECRET": "s3cret",
        }
    )

    assert config.cache_ttl_seconds == 3600
    assert config.source_timeout_seconds == 2.5
    assert config.daily_free_scans == 3
    assert config.beta_signatures == ("abc", "def")
    assert config.allow_list_url == "https://functions.example.com/check"
    assert config.app_installer_package == "com.android.vending"
    assert config.app_version_name == "2.0.0-internal"
    assert config.db_config["port"] == 6543
    assert config.auth_jwt_secret == "s3cret"


def test_negative_values_are_clamped():
    config = load_entitlement_config({"FREE_DAILY_SCANS": "-4", "ENTITLEMENT_CACHE_TTL_SECONDS": "0"})

    assert config.daily_free_scans == 0
    assert config.cache_ttl_seconds == 1


def test_invalid_number_raises():
    with pytest.raises(ValueError):
        load_entitlement_config({"FREE_DAILY_SCANS": "five"})
