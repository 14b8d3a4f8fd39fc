# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API layer for the EduDash assistant control plane.

This module provides the FastAPI application factory: quota, assistant
and health endpoints over one service container.
"""

from src.api.app import create_app

__all__ = ["create_app"]
