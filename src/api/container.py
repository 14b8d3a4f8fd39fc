# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Application service container.

Every collaborator is built once, here, when the application starts and
is handed to the routes through ``app.state``. Nothing is a module-level
singleton, so tests can build a container with fakes.

Wiring:
    EventBus
    Database (optional) -> SQLAlchemyQuotaStore | InMemoryQuotaStore
    RedisClient (optional) -> RedisQuotaViewCache | InMemoryQuotaViewCache
    QuotaLedger(store, cache, event_bus)
    ToolRegistry(directory, ClientActionQueue)
    ConfirmationGate
    LiteLLMBackend
    ConversationOrchestrator(registry, ledger, backend, gate, ...)
"""

import logging
from dataclasses import dataclass

from src.core.config.settings import Settings
from src.core.intelligence.llm import LiteLLMBackend, ModelBackend
from src.core.orchestration import ConversationOrchestrator
from src.core.tools import ConfirmationGate, ToolRegistry
from src.domains.quota import (
    InMemoryQuotaStore,
    InMemoryQuotaViewCache,
    QuotaLedger,
    QuotaStore,
    QuotaViewCache,
    RedisQuotaViewCache,
    SQLAlchemyQuotaStore,
)
from src.infrastructure.cache import RedisClient
from src.infrastructure.database import Database
from src.infrastructure.events import EventBus
from src.tools import ClientActionQueue, InMemorySchoolDirectory, SchoolDirectory
from src.tools import create_tool_registry

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """Collaborators shared by all requests."""

    settings: Settings
    event_bus: EventBus
    ledger: QuotaLedger
    registry: ToolRegistry
    confirmation_gate: ConfirmationGate
    actions: ClientActionQueue
    orchestrator: ConversationOrchestrator
    database: Database | None = None
    redis: RedisClient | None = None

    @classmethod
    def create(
        cls,
        settings: Settings,
        backend: ModelBackend | None = None,
        directory: SchoolDirectory | None = None,
    ) -> "ServiceContainer":
        """Build the container from settings.

        Args:
            settings: Application settings.
            backend: Model backend; LiteLLM when omitted.
            directory: School data access; an empty in-memory directory
                when omitted.
        """
        event_bus = EventBus()

        database: Database | None = None
        store: QuotaStore
        if settings.database.enabled:
            database = Database(
                settings.database.url,
                pool_size=settings.database.pool_size,
                max_overflow=settings.database.max_overflow,
                echo=settings.database.echo,
            )
            store = SQLAlchemyQuotaStore(database)
        else:
            store = InMemoryQuotaStore()

        redis: RedisClient | None = None
        cache: QuotaViewCache
        if settings.redis.enabled:
            redis = RedisClient(settings.redis)
            cache = RedisQuotaViewCache(redis)
        else:
            cache = InMemoryQuotaViewCache()

        ledger = QuotaLedger(store, settings=settings.quota, cache=cache, event_bus=event_bus)

        actions = ClientActionQueue()
        registry = create_tool_registry(directory or InMemorySchoolDirectory(), actions)
        gate = ConfirmationGate(
            ttl_seconds=settings.assistant.confirmation_ttl_seconds,
            audit_log_size=settings.assistant.confirmation_audit_size,
        )

        orchestrator = ConversationOrchestrator(
            registry=registry,
            ledger=ledger,
            backend=backend or LiteLLMBackend(settings.llm),
            confirmation_gate=gate,
            settings=settings.assistant,
            action_source=actions,
            event_bus=event_bus,
        )

        return cls(
            settings=settings,
            event_bus=event_bus,
            ledger=ledger,
            registry=registry,
            confirmation_gate=gate,
            actions=actions,
            orchestrator=orchestrator,
            database=database,
            redis=redis,
        )

    async def start(self) -> None:
        """Connect external resources."""
        if self.database is not None:
            await self.database.create_all()
            logger.info("Quota database initialized")
        if self.redis is not None:
            await self.redis.connect()
            logger.info("Redis connection initialized")

    async def close(self) -> None:
        if self.redis is not None:
            await self.redis.close()
            logger.info("Redis connection closed")
        if self.database is not None:
            await self.database.close()
            logger.info("Database connections closed")
