"""
Integration API routes — OAuth start/callback, disconnect, project listing.

Route prefix: /api/integrations
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from auth.dependencies import get_current_user_id
from connectors.orchestrator import IntegrationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter(tags=["integrations"])


def get_orchestrator(request: Request) -> IntegrationOrchestrator:
    return request.app.state.orchestrator


# ── Routes ─────────────────────────────────────────────────────────────


@router.get("/")
async def status_check() -> Dict[str, str]:
    return {"status": "Integrations API active"}


@router.get("/providers")
async def list_providers(
    orchestrator: IntegrationOrchestrator = Depends(get_orchestrator),
) -> List[Dict[str, Any]]:
    """
    List all known providers and whether they are configured.
    No auth required, used by the frontend to render the integrations page.
    """
    return orchestrator.registry.list_providers()


@router.get("/connections")
async def list_connections(
    user_id: str = Depends(get_current_user_id),
    orchestrator: IntegrationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    """List the authenticated user's connected providers (no tokens)."""
    return {"connections": await orchestrator.list_connections(user_id)}


@router.get("/{provider}/start")
async def start_flow(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: IntegrationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, str]:
    """
    Get the OAuth authorization URL for a provider.

    The frontend navigates the browser to this URL.
    """
    return {"url": orchestrator.start_flow(user_id, provider)}


@router.get("/{provider}/callback")
async def oauth_callback(
    provider: str,
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
    orchestrator: IntegrationOrchestrator = Depends(get_orchestrator),
) -> RedirectResponse:
    """
    OAuth callback.  The vendor redirects here after consent.

    Always answers with a redirect back to the frontend, carrying either
    ``status=success`` or ``status=error&message=…``.
    """
    target = await orchestrator.handle_callback(
        provider, code, state, error=error_description or error
    )
    return RedirectResponse(url=target, status_code=302)


@router.post("/{provider}/disconnect")
async def disconnect(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: IntegrationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, bool]:
    await orchestrator.disconnect(user_id, provider)
    return {"success": True}


@router.get("/{provider}/projects")
async def list_projects(
    provider: str,
    user_id: str = Depends(get_current_user_id),
    orchestrator: IntegrationOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    projects = await orchestrator.list_projects(user_id, provider)
    return {"projects": [p.model_dump(by_alias=True) for p in projects]}
