"""Provider adapters for Polyphony.

Each streaming service implements the :class:`ProviderAdapter` contract.
Adapters are keyed by provider id; callers never branch on the service.
"""

import logging
from typing import Dict, Optional

from polyphony.config import PolyphonyConfig
from polyphony.models import ProviderId
from polyphony.providers.base import (
    AuthResult,
    Credentials,
    CredentialsSource,
    ProviderAdapter,
    StaticCredentials,
    StreamGrant,
)
from polyphony.providers.qobuz import QobuzAdapter
from polyphony.providers.spotify import SpotifyAdapter

logger = logging.getLogger("polyphony.providers")


def credentials_from_config(config: PolyphonyConfig) -> StaticCredentials:
    """Seed in-memory credentials from the providers section."""
    qobuz = config.providers.qobuz
    spotify = config.providers.spotify
    return StaticCredentials(
        {
            ProviderId.QOBUZ: Credentials(
                username=qobuz.username,
                password=qobuz.password,
                access_token=qobuz.user_auth_token,
                app_id=qobuz.app_id,
                secret=qobuz.secret,
            ),
            ProviderId.SPOTIFY: Credentials(
                access_token=spotify.access_token,
                refresh_token=spotify.refresh_token,
                app_id=spotify.client_id,
                secret=spotify.client_secret,
            ),
        }
    )


def create_adapters(
    config: PolyphonyConfig,
    credentials: Optional[CredentialsSource] = None,
) -> Dict[ProviderId, ProviderAdapter]:
    """Build every enabled and configured adapter, keyed by provider id."""
    credentials = credentials or credentials_from_config(config)
    timeout = config.http.timeout
    candidates = []

    if config.providers.qobuz.enabled:
        candidates.append(
            QobuzAdapter(
                config.providers.qobuz.model_dump(),
                credentials,
                timeout=timeout,
                user_agent=config.http.user_agent,
            )
        )
    if config.providers.spotify.enabled:
        candidates.append(
            SpotifyAdapter(config.providers.spotify.model_dump(), credentials, timeout=timeout)
        )

    adapters: Dict[ProviderId, ProviderAdapter] = {}
    for adapter in candidates:
        if adapter.is_configured():
            adapters[adapter.provider_id] = adapter
        else:
            logger.info(f"{adapter.display_name} is enabled but not configured - skipping")
    return adapters


__all__ = [
    "AuthResult",
    "Credentials",
    "CredentialsSource",
    "ProviderAdapter",
    "QobuzAdapter",
    "SpotifyAdapter",
    "StaticCredentials",
    "StreamGrant",
    "create_adapters",
    "credentials_from_config",
]
