"""Concrete collaborators: remote allow-list, document store and install metadata."""
from __future__ import annotations

import json
import logging
from copy import deepcopy
from datetime import datetime
from typing import Any, Dict, Mapping, Optional

import asyncpg
import httpx

from .exceptions import PersistenceError, SourceUnavailableError
from .models import AllowListResponse, InstallMetadata

logger = logging.getLogger("entitlements.clients")

BETA_TESTERS_TABLE = "beta_testers"
MANUAL_GRANTS_TABLE = "manual_beta_grants"
USER_PROFILES_TABLE = "user_profiles"


class HttpAllowListClient:
    """Calls the ``checkBetaTesterStatus`` callable function over HTTPS."""

    def __init__(
        self,
        function_url: str,
        *,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        if not function_url:
            raise ValueError("function_url must be provided")
        self._function_url = function_url
        self._timeout = timeout
        self._client = client

    async def check_beta_tester(self, email: str, timestamp_ms: int) -> AllowListResponse:
        payload = {"data": {"email": email, "timestamp": timestamp_ms}}
        try:
            if self._client is not None:
                response = await self._client.post(self._function_url, json=payload, timeout=self._timeout)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._function_url, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SourceUnavailableError("allow_list", f"status {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailableError("allow_list", str(exc) or type(exc).__name__) from exc

        try:
            body = response.json()
        except ValueError:
            logger.warning("Allow-list returned a non-JSON body")
            return AllowListResponse()
        return AllowListResponse.from_payload(body)


def _decode_document(raw: Any) -> Optional[Dict[str, Any]]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = json.loads(raw)
    return dict(raw)


class PostgresDocumentStore:
    """Document collections stored as JSONB rows keyed by user id."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    @classmethod
    async def connect(cls, *, command_timeout: float = 10.0, **db_config: Any) -> "PostgresDocumentStore":
        pool = await asyncpg.create_pool(min_size=1, max_size=5, command_timeout=command_timeout, **db_config)
        return cls(pool)

    async def close(self) -> None:
        await self._pool.close()

    async def _fetch_document(self, table: str, user_id: str) -> Optional[Dict[str, Any]]:
        query = f"SELECT document FROM {table} WHERE user_id = $1"
        try:
            async with self._pool.acquire() as connection:
                raw = await connection.fetchval(query, user_id)
        except (asyncpg.PostgresError, OSError) as exc:
            raise SourceUnavailableError(table, str(exc)) from exc
        return _decode_document(raw)

    async def get_beta_tester(self, user_id: str) -> Optional[Mapping[str, Any]]:
        return await self._fetch_document(BETA_TESTERS_TABLE, user_id)

    async def get_manual_grant(self, user_id: str) -> Optional[Mapping[str, Any]]:
        return await self._fetch_document(MANUAL_GRANTS_TABLE, user_id)

    async def update_user_profile(self, user_id: str, fields: Mapping[str, Any]) -> None:
        query = f"""
            INSERT INTO {USER_PROFILES_TABLE} (user_id, document)
            VALUES ($1, $2::jsonb)
            ON CONFLICT (user_id) DO UPDATE
            SET document = {USER_PROFILES_TABLE}.document || EXCLUDED.document
        """
        try:
            async with self._pool.acquire() as connection:
                await connection.execute(query, user_id, json.dumps(dict(fields), default=_json_default))
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(USER_PROFILES_TABLE, str(exc)) from exc

    async def deactivate_beta_tester(self, user_id: str, revoked_at: datetime) -> None:
        patch = {"isActive": False, "revokedDate": revoked_at.isoformat()}
        query = f"""
            UPDATE {BETA_TESTERS_TABLE}
            SET document = document || $2::jsonb
            WHERE user_id = $1
        """
        try:
            async with self._pool.acquire() as connection:
                await connection.execute(query, user_id, json.dumps(patch))
        except (asyncpg.PostgresError, OSError) as exc:
            raise PersistenceError(BETA_TESTERS_TABLE, str(exc)) from exc


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


class InMemoryDocumentStore:
    """Dictionary-backed document store for tests and local development."""

    def __init__(self) -> None:
        self.beta_testers: Dict[str, Dict[str, Any]] = {}
        self.manual_grants: Dict[str, Dict[str, Any]] = {}
        self.user_profiles: Dict[str, Dict[str, Any]] = {}

    async def get_beta_tester(self, user_id: str) -> Optional[Mapping[str, Any]]:
        document = self.beta_testers.get(user_id)
        return deepcopy(document) if document is not None else None

    async def get_manual_grant(self, user_id: str) -> Optional[Mapping[str, Any]]:
        document = self.manual_grants.get(user_id)
        return deepcopy(document) if document is not None else None

    async def update_user_profile(self, user_id: str, fields: Mapping[str, Any]) -> None:
        self.user_profiles.setdefault(user_id, {}).update(deepcopy(dict(fields)))

    async def deactivate_beta_tester(self, user_id: str, revoked_at: datetime) -> None:
        document = self.beta_testers.get(user_id)
        if document is None:
            raise PersistenceError(BETA_TESTERS_TABLE, f"no document for user {user_id}")
        document.update({"isActive": False, "revokedDate": revoked_at})


class StaticInstallMetadataProvider:
    """Install metadata fixed at build or deploy time."""

    def __init__(self, metadata: InstallMetadata) -> None:
        self._metadata = metadata

    def get_install_metadata(self) -> InstallMetadata:
        return self._metadata
