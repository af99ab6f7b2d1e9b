"""Entitlement and feature gate configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple
import os


@dataclass(frozen=True)
class EntitlementConfig:
    """Configuration for beta verification, caching and the free scan allowance."""

    cache_ttl_seconds: int
    source_timeout_seconds: float
    daily_free_scans: int
    beta_program: str
    installer_package: str
    beta_signatures: Tuple[str, ...]
    beta_build_markers: Tuple[str, ...]
    allow_list_url: Optional[str]
    local_store_path: Optional[str]
    app_installer_package: Optional[str]
    app_signature_hashes: Tuple[str, ...]
    app_build_type: str
    app_version_name: str
    auth_jwt_secret: Optional[str]
    auth_jwt_algorithm: str
    db_config: Dict[str, Any] = field(default_factory=dict)

    @property
    def cache_ttl_ms(self) -> int:
        return self.cache_ttl_seconds * 1000


def _to_int(value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected integer value, got {value!r}") from exc


def _to_float(value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Expected float value, got {value!r}") from exc


def _to_tuple(value: Optional[str], *, default: Tuple[str, ...] = ()) -> Tuple[str, ...]:
    if value is None:
        return default
    return tuple(item.strip() for item in value.split(",") if item.strip())


def load_entitlement_config(env: Optional[Mapping[str, str]] = None) -> EntitlementConfig:
    """Load :class:`EntitlementConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    cache_ttl_seconds = max(1, _to_int(env_mapping.get("ENTITLEMENT_CACHE_TTL_SECONDS"), default=24 * 60 * 60))
    source_timeout_seconds = max(0.1, _to_float(env_mapping.get("ENTITLEMENT_SOURCE_TIMEOUT"), default=5.0))
    daily_free_scans = max(0, _to_int(env_mapping.get("FREE_DAILY_SCANS"), default=5))

    beta_program = (env_mapping.get("BETA_PROGRAM") or "internal_testing").strip()
    installer_package = (env_mapping.get("BETA_INSTALLER_PACKAGE") or "com.android.vending").strip()
    beta_signatures = _to_tuple(
        env_mapping.get("BETA_SIGNATURES"),
        default=("beta_signature_hash_1", "beta_signature_hash_2", "internal_testing_signature"),
    )
    beta_build_markers = _to_tuple(env_mapping.get("BETA_BUILD_MARKERS"), default=("beta", "internal"))

    db_config: Dict[str, Any] = {
        "host": env_mapping.get("DB_HOST", "127.0.0.1"),
        "port": _to_int(env_mapping.get("DB_PORT"), default=5432),
        "database": env_mapping.get("DB_NAME", "caltrack"),
        "user": env_mapping.get("DB_USER", "caltrack"),
        "password": env_mapping.get("DB_PASSWORD", "caltrack"),
    }

    return EntitlementConfig(
        cache_ttl_seconds=cache_ttl_seconds,
        source_timeout_seconds=source_timeout_seconds,
        daily_free_scans=daily_free_scans,
        beta_program=beta_program,
        installer_package=installer_package,
        beta_signatures=beta_signatures,
        beta_build_markers=beta_build_markers,
        allow_list_url=env_mapping.get("BETA_ALLOW_LIST_URL") or None,
        local_store_path=env_mapping.get("LOCAL_STORE_PATH") or None,
        app_installer_package=env_mapping.get("APP_INSTALLER_PACKAGE") or None,
        app_signature_hashes=_to_tuple(env_mapping.get("APP_SIGNATURE_HASHES")),
        app_build_type=env_mapping.get("APP_BUILD_TYPE", ""),
        app_version_name=env_mapping.get("APP_VERSION_NAME", ""),
        auth_jwt_secret=env_mapping.get("AUTH_JWT_SECRET") or None,
        auth_jwt_algorithm=(env_mapping.get("AUTH_JWT_ALGORITHM") or "HS256").strip(),
        db_config=db_config,
    )
