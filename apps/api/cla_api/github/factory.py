"""Selects the GitHub gateway for an installation."""

import logging
from typing import Optional

from fastapi import Request

from cla_api.errors import ConfigurationError, MissingInstallationError
from cla_api.github.client import GitHubClient
from cla_api.github.http_client import HttpxGitHubClient
from cla_api.github.memory_client import InMemoryGitHubClient
from cla_api.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class GitHubClientFactory:
    """Builds installation-scoped GitHub clients.

    Strict mode requires App credentials and an installation id. Permissive
    mode falls back to the factory's own in-memory client when either is
    missing, so local development works without a GitHub App.
    """

    def __init__(self, settings: Settings, memory_client: Optional[InMemoryGitHubClient] = None):
        """Initialize client factory."""
        self.settings = settings
        self.memory_client = memory_client or InMemoryGitHubClient()

    def for_installation(self, installation_id: Optional[int]) -> GitHubClient:
        if not self.settings.has_github_app_credentials or installation_id is None:
            if self.settings.is_strict:
                if installation_id is None:
                    raise MissingInstallationError(
                        "GitHub App installation id is missing for this organization."
                    )
                raise ConfigurationError("GitHub App credentials are not configured.")
            logger.debug("Using in-memory GitHub client", extra={"installation_id": installation_id})
            return self.memory_client

        try:
            return HttpxGitHubClient(
                installation_id=installation_id,
                app_id=self.settings.github_app_id,
                private_key=self.settings.github_private_key,
                api_url=self.settings.github_api_url,
                timeout=self.settings.github_timeout_seconds,
            )
        except Exception as e:
            logger.error(
                f"Failed to create GitHub client for installation {installation_id}: {e}",
                exc_info=True,
            )
            raise ConfigurationError(f"Failed to create GitHub client: {e}") from e


def get_github_factory(request: Request) -> GitHubClientFactory:
    """FastAPI dependency returning the factory stored on ``app.state``."""
    factory = getattr(request.app.state, "github_factory", None)
    if factory is None:
        factory = GitHubClientFactory(get_settings())
        request.app.state.github_factory = factory
    return factory
