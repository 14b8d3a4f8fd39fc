# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Core package of the assistant control plane.

- config: Application configuration and settings
- tools: Tool registry, tool base classes and confirmation gate
- voice: Real-time voice session state machine and transports
- intelligence: Model backend over LiteLLM
- orchestration: Conversation turns tying the above together
"""
