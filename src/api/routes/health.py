# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Health check endpoints.

This module provides health and readiness endpoints for the API.
Components that are not configured (in-memory quota store, in-memory
cache) report ``disabled`` and do not affect the overall status.
"""

import time
import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from src.api.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()


class ComponentHealth(BaseModel):
    """Individual component health status."""
    status: str = Field(description="Component status")
    latency_ms: float | None = Field(None, description="Response latency in ms")
    message: str | None = Field(None, description="Additional status message")


class ComponentsHealth(BaseModel):
    """All components health status."""
    database: ComponentHealth | None = None
    redis: ComponentHealth | None = None
    tools: int = Field(0, description="Registered tools")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(description="Overall health status")
    timestamp: datetime = Field(description="Current server timestamp")
    version: str = Field(description="API version")
    environment: str = Field(description="Deployment environment")
    uptime_seconds: int = Field(description="Server uptime in seconds")
    components: ComponentsHealth = Field(default_factory=ComponentsHealth)


class ReadinessResponse(BaseModel):
    """Readiness check response model."""
    ready: bool = Field(description="Whether the service is ready")
    checks: dict[str, Any] = Field(description="Individual check results")


async def check_database(container: ServiceContainer) -> ComponentHealth:
    """Check the quota database connection."""
    if container.database is None:
        return ComponentHealth(status="disabled")

    start = time.time()
    healthy = await container.database.check_connection()
    latency = (time.time() - start) * 1000
    if healthy:
        return ComponentHealth(status="healthy", latency_ms=round(latency, 2))
    logger.error("Database health check failed")
    return ComponentHealth(status="unhealthy", message="Database unreachable")


async def check_redis(container: ServiceContainer) -> ComponentHealth:
    """Check the Redis connection."""
    if container.redis is None:
        return ComponentHealth(status="disabled")

    start = time.time()
    healthy = await container.redis.ping()
    latency = (time.time() - start) * 1000
    if healthy:
        return ComponentHealth(status="healthy", latency_ms=round(latency, 2))
    logger.error("Redis health check failed")
    return ComponentHealth(status="unhealthy", message="Redis unreachable")


def _overall(components: list[ComponentHealth]) -> str:
    statuses = [c.status for c in components if c.status != "disabled"]
    if all(s == "healthy" for s in statuses):
        return "healthy"
    return "unhealthy"


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Check if the API is healthy with component details.

    Returns:
        HealthResponse with detailed status.
    """
    container: ServiceContainer = request.app.state.container
    now = datetime.now(timezone.utc)
    uptime = int(time.time() - _server_start_time)

    db_health = await check_database(container)
    redis_health = await check_redis(container)

    return HealthResponse(
        status=_overall([db_health, redis_health]),
        timestamp=now,
        version="1.0.0",
        environment=container.settings.environment,
        uptime_seconds=uptime,
        components=ComponentsHealth(
            database=db_health,
            redis=redis_health,
            tools=len(container.registry),
        ),
    )


@router.get("/ready", response_model=ReadinessResponse)
async def readiness_check(request: Request) -> ReadinessResponse:
    """Check if the API is ready to accept traffic.

    Returns:
        ReadinessResponse with individual check results.
    """
    container: ServiceContainer = request.app.state.container
    checks: dict[str, Any] = {}
    all_ready = True

    for name, health in (
        ("database", await check_database(container)),
        ("redis", await check_redis(container)),
    ):
        checks[name] = {"status": health.status, "latency_ms": health.latency_ms}
        if health.status == "unhealthy":
            all_ready = False

    return ReadinessResponse(ready=all_ready, checks=checks)
