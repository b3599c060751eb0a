from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Report liveness and whether a credential is stored (no refresh attempted)."""
    store = request.app.state.credential_store
    return {"status": "ok", "authenticated": store.has_credential()}
