"""EduDash assistant control plane.

Tool registry, real-time voice sessions, quota ledger and conversation
orchestration behind the school management app's AI assistant.

Copyright (C) 2025 Global Digital Labs (gdlabs.io)
SPDX-License-Identifier: LGPL-3.0-or-later
"""

__version__ = "1.0.0"
