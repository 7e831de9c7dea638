"""
Permission API endpoints.

Exposes the engine's decision contract to other services. Every endpoint
answers with a fail-closed decision; engine failures are never surfaced as
errors.
"""

import logging

from fastapi import APIRouter, Depends

from practice_rbac.api.dependencies import get_engine, verify_service_secret
from practice_rbac.api.models import (
    InvalidateRequest,
    InvalidateResponse,
    ModuleAccessResponse,
    ModuleSummaryRow,
    PermissionMatrixResponse,
    PermissionStatusResponse,
    PermissionSummaryResponse,
)
from practice_rbac.base import ActionType
from practice_rbac.engine import PermissionEngine

logger = logging.getLogger("practice_rbac.api")

router = APIRouter(prefix="/api/permissions", tags=["permissions"])


@router.get("/{user_id}/matrix", response_model=PermissionMatrixResponse)
async def get_matrix(
    user_id: str,
    service: str = Depends(verify_service_secret),
    engine: PermissionEngine = Depends(get_engine),
):
    """Full module -> permissions matrix for a user."""
    matrix = await engine.get_user_permission_matrix(user_id)
    return PermissionMatrixResponse.from_matrix(user_id, matrix)


@router.get("/{user_id}/summary", response_model=PermissionSummaryResponse)
async def get_summary(
    user_id: str,
    service: str = Depends(verify_service_secret),
    engine: PermissionEngine = Depends(get_engine),
):
    """Rows for a "My Permissions" view, one per module."""
    matrix = await engine.get_user_permission_matrix(user_id)
    rows = await engine.summarize(user_id)
    return PermissionSummaryResponse(
        user_id=user_id,
        role=matrix.role,
        is_unrestricted=matrix.is_unrestricted,
        modules=[ModuleSummaryRow.from_summary(row) for row in rows],
    )


@router.get("/{user_id}/modules/{module}", response_model=ModuleAccessResponse)
async def check_module_access(
    user_id: str,
    module: str,
    service: str = Depends(verify_service_secret),
    engine: PermissionEngine = Depends(get_engine),
):
    """Whether a user can see a module."""
    visible = await engine.can_access_module(user_id, module)
    return ModuleAccessResponse(user_id=user_id, module=module, visible=visible)


@router.get(
    "/{user_id}/modules/{module}/actions/{action}",
    response_model=PermissionStatusResponse,
)
async def check_action(
    user_id: str,
    module: str,
    action: ActionType,
    service: str = Depends(verify_service_secret),
    engine: PermissionEngine = Depends(get_engine),
):
    """
    Decide one action in a module.

    Denials are audited; the reason and tooltip distinguish a hidden module
    from a missing action permission.
    """
    status = await engine.check(user_id, module, action)
    return PermissionStatusResponse.from_status(user_id, module, action.value, status)


@router.post("/invalidate", response_model=InvalidateResponse)
async def invalidate(
    request: InvalidateRequest,
    service: str = Depends(verify_service_secret),
    engine: PermissionEngine = Depends(get_engine),
):
    """
    Invalidate cached permissions after an edit.

    - user_id: a user's role or module access changed
    - role: a role's permission rows changed
    - neither: clear everything
    """
    cleared: list[str] = []

    if request.role:
        await engine.invalidate_role(request.role)
        cleared.append(f"role:{request.role}")
    if request.user_id:
        await engine.clear_user_cache(request.user_id)
        cleared.append(f"user:{request.user_id}")
    if not cleared:
        await engine.clear_all_caches()
        cleared.append("all")

    logger.info(f"[RBAC] Cache invalidation by {service}: {', '.join(cleared)}")
    return InvalidateResponse(success=True, cleared=cleared)
