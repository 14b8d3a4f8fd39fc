# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API Routes package.

Unversioned routes (health and readiness probes).
"""

from src.api.routes import health

__all__ = ["health"]
