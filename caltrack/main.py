"""FastAPI application exposing entitlement status and feature gating."""
from __future__ import annotations

import asyncio
import logging

import asyncpg
from dotenv import load_dotenv
from fastapi import FastAPI

from caltrack.app.entitlements import PostgresDocumentStore
from caltrack.app.routes.entitlements import router as entitlements_router
from caltrack.app.services.entitlements import build_feature_gate, configure_feature_gate
from caltrack.app.services.identity import IdentitySession, configure_request_identity
from caltrack.config import load_entitlement_config

load_dotenv()

logger = logging.getLogger("caltrack")

identity_session = IdentitySession()
configure_request_identity(load_entitlement_config(), identity_session)

app = FastAPI(title="CalTrack Entitlements API")
app.include_router(entitlements_router)


@app.on_event("startup")
async def setup_feature_gates() -> None:
    config = load_entitlement_config()
    document_store = None
    try:
        document_store = await PostgresDocumentStore.connect(**config.db_config)
    except (OSError, asyncio.TimeoutError, asyncpg.PostgresError):
        logger.exception("Document store unavailable at startup; using in-memory beta records")
    app.state.document_store = document_store
    gate = build_feature_gate(
        config,
        document_store=document_store,
        identity_provider=identity_session.current,
    )
    configure_feature_gate(gate)
    app.state.feature_gate_task = gate.initialize_feature_gates()


@app.on_event("shutdown")
async def close_document_store() -> None:
    document_store = getattr(app.state, "document_store", None)
    if document_store is not None:
        await document_store.close()
    task = getattr(app.state, "feature_gate_task", None)
    if task is not None and not task.done():
        task.cancel()


__all__ = ["app", "identity_session"]
