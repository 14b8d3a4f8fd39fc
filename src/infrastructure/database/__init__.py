# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the SQL quota store.

Example:
    from src.infrastructure.database import Database

    database = Database(settings.database.url)
    async with database.session() as session:
        ...
"""

from src.infrastructure.database.connection import Database, DatabaseError
from src.infrastructure.database.models import (
    AllocationHistoryRow,
    AllocationRequestRow,
    Base,
    QuotaAllocationRow,
    UsageEventRow,
)

__all__ = [
    "Database",
    "DatabaseError",
    "Base",
    "QuotaAllocationRow",
    "AllocationHistoryRow",
    "UsageEventRow",
    "AllocationRequestRow",
]
