# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Endpoint and credential issuing for voice sessions.

Every voice session connects with a fresh endpoint description. In
production a backend token service mints short-lived credentials; in
development a static token from settings is enough.
"""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

import httpx

from src.core.config.settings import VoiceSettings
from src.core.voice.exceptions import CredentialError
from src.core.voice.transport.base import TransportEndpoint, TransportKind

logger = logging.getLogger(__name__)


class CredentialIssuer(ABC):
    """Issues the endpoint a transport backend connects to."""

    @abstractmethod
    async def issue(self, kind: TransportKind) -> TransportEndpoint:
        """Issue an endpoint for a new session.

        Raises:
            CredentialError: If no credential can be issued.
        """
        pass


def _default_url(settings: VoiceSettings, kind: TransportKind) -> str:
    if kind == TransportKind.WEBRTC:
        return f"{settings.realtime_url}?model={settings.realtime_model}"
    return settings.stream_url


def _realtime_options(settings: VoiceSettings) -> dict[str, Any]:
    return {
        "vad_silence_ms": settings.vad_silence_ms,
        "transcription_model": settings.transcription_model,
    }


class StaticCredentialIssuer(CredentialIssuer):
    """Issues the configured URLs with the static token from settings."""

    def __init__(self, settings: VoiceSettings) -> None:
        self._settings = settings

    async def issue(self, kind: TransportKind) -> TransportEndpoint:
        return TransportEndpoint(
            url=_default_url(self._settings, kind),
            token=self._settings.static_token.get_secret_value(),
            options=_realtime_options(self._settings),
        )


class HTTPCredentialIssuer(CredentialIssuer):
    """Fetches short-lived credentials from a token endpoint.

    The endpoint receives ``{"transport": <kind>}`` and answers with
    ``{"token": ..., "url": ..., "expires_at": ...}``. Provider style
    ``{"client_secret": {"value": ..., "expires_at": <epoch>}}`` replies
    are accepted as well. A missing ``url`` falls back to the configured
    one.

    Args:
        settings: Voice settings; ``token_url`` must be set.
        client: HTTP client to reuse. A short-lived client is created per
            call when omitted.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        settings: VoiceSettings,
        client: httpx.AsyncClient | None = None,
        timeout: float = 10.0,
    ) -> None:
        if not settings.token_url:
            raise CredentialError("VOICE_TOKEN_URL is not configured")
        self._settings = settings
        self._token_url = settings.token_url
        self._client = client
        self._timeout = timeout

    async def issue(self, kind: TransportKind) -> TransportEndpoint:
        try:
            if self._client is not None:
                response = await self._client.post(
                    self._token_url, json={"transport": kind.value}
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(
                        self._token_url, json={"transport": kind.value}
                    )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.warning(
                "Token endpoint rejected request (%d)", e.response.status_code
            )
            raise CredentialError(
                f"Token endpoint returned {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("Token endpoint unreachable: %s", str(e))
            raise CredentialError(f"Token endpoint unreachable: {e}") from e

        return self._parse(data, kind)

    def _parse(self, data: dict[str, Any], kind: TransportKind) -> TransportEndpoint:
        secret = data.get("client_secret")
        if isinstance(secret, dict):
            token = secret.get("value")
            expires = secret.get("expires_at")
        else:
            token = data.get("token")
            expires = data.get("expires_at")

        if not token:
            raise CredentialError("Token endpoint returned no credential")

        expires_at: datetime | None = None
        if isinstance(expires, (int, float)):
            expires_at = datetime.fromtimestamp(expires, tz=timezone.utc)
        elif isinstance(expires, str):
            expires_at = datetime.fromisoformat(expires)

        return TransportEndpoint(
            url=data.get("url") or _default_url(self._settings, kind),
            token=token,
            expires_at=expires_at,
            options=_realtime_options(self._settings),
        )


def build_credential_issuer(
    settings: VoiceSettings,
    client: httpx.AsyncClient | None = None,
) -> CredentialIssuer:
    """Pick the HTTP issuer when a token endpoint is configured."""
    if settings.token_url:
        return HTTPCredentialIssuer(settings, client=client)
    return StaticCredentialIssuer(settings)
