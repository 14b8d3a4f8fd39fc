# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API middleware components.

This package provides middleware for request processing:
- RequestContextMiddleware: Request ID and caller identity in log context.

Authentication happens at the gateway; identity arrives as headers and
is read by the dependencies in ``src.api.dependencies``.
"""

from src.api.middleware.context import REQUEST_ID_HEADER, RequestContextMiddleware

__all__ = [
    "RequestContextMiddleware",
    "REQUEST_ID_HEADER",
]
