# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Resolve the calling principal from the gateway's identity headers
- Enforce administrator roles
- Get the services built at start-up

Identity is established upstream: the gateway authenticates the caller
and forwards ``X-Principal-Id``, ``X-Organization-Id`` and
``X-Principal-Role``. Tenant scope always comes from these headers,
never from request bodies.

Example:
    @router.get("/summary")
    async def summary(
        principal: CurrentPrincipal,
        ledger: Ledger,
    ):
        ...
"""

import logging
from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, Header, HTTPException, Request, status

from src.api.container import ServiceContainer
from src.core.orchestration import ConversationOrchestrator
from src.core.tools import ToolContext, ToolRegistry
from src.domains.quota import QuotaLedger

logger = logging.getLogger(__name__)

ADMIN_ROLES = frozenset({"principal", "principal_admin", "super_admin"})


@dataclass(frozen=True)
class Principal:
    """Caller identity forwarded by the gateway.

    Attributes:
        id: Principal identifier.
        organization_id: Organization (tenant) of the principal.
        role: Principal role ("teacher", "principal", "parent", ...).
    """

    id: str
    organization_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    def tool_context(
        self,
        conversation_id: str | None = None,
        language: str = "en",
    ) -> ToolContext:
        return ToolContext(
            organization_id=self.organization_id,
            principal_id=self.id,
            role=self.role,
            language=language,
            conversation_id=conversation_id,
        )


def get_principal(
    x_principal_id: Annotated[str | None, Header()] = None,
    x_organization_id: Annotated[str | None, Header()] = None,
    x_principal_role: Annotated[str | None, Header()] = None,
) -> Principal:
    """Get the calling principal.

    Raises:
        HTTPException: 401 if the identity headers are missing.
    """
    if not x_principal_id or not x_organization_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing principal identity",
        )
    return Principal(
        id=x_principal_id,
        organization_id=x_organization_id,
        role=(x_principal_role or "teacher").lower(),
    )


def require_admin(principal: Annotated[Principal, Depends(get_principal)]) -> Principal:
    """Require an organization administrator.

    Raises:
        HTTPException: 403 if the principal is not an administrator.
    """
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Administrator role required",
        )
    return principal


async def resolve_scope(principal: Principal, scope_id: str | None, ledger: QuotaLedger) -> str:
    """Scope a request to the caller unless an administrator names another.

    Administrators reach only scopes whose current allocations belong to
    their own organization.

    Raises:
        HTTPException: 403 if a non-administrator names another scope,
            404 if the scope is not part of the administrator's organization.
    """
    if scope_id is None or scope_id == principal.id:
        return principal.id
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not allowed to access another scope",
        )
    if await ledger.scope_organization(scope_id) != principal.organization_id:
        logger.info(
            "Scope %s outside organization %s requested by %s",
            scope_id,
            principal.organization_id,
            principal.id,
        )
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Scope {scope_id} not found",
        )
    return scope_id


def get_container(request: Request) -> ServiceContainer:
    """Get the service container built by the lifespan.

    Raises:
        HTTPException: 503 if the application has not started.
    """
    container = getattr(request.app.state, "container", None)
    if container is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Services not initialized",
        )
    return container


def get_ledger(container: Annotated[ServiceContainer, Depends(get_container)]) -> QuotaLedger:
    return container.ledger


def get_registry(container: Annotated[ServiceContainer, Depends(get_container)]) -> ToolRegistry:
    return container.registry


def get_orchestrator(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> ConversationOrchestrator:
    return container.orchestrator


# Type aliases for cleaner endpoint signatures
CurrentPrincipal = Annotated[Principal, Depends(get_principal)]
AdminPrincipal = Annotated[Principal, Depends(require_admin)]
Ledger = Annotated[QuotaLedger, Depends(get_ledger)]
Registry = Annotated[ToolRegistry, Depends(get_registry)]
Orchestrator = Annotated[ConversationOrchestrator, Depends(get_orchestrator)]
