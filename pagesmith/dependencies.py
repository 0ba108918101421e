"""Process-wide collaborators, exposed as FastAPI dependencies.

Tests replace these through ``app.dependency_overrides``.
"""

import logging
from typing import Optional

from .clients.github_client import GitHubClient
from .clients.llm_client import LiteLLMTextGenerator
from .core.config import settings
from .services.deployment_guard import DeploymentGuard
from .services.generation_runner import GenerationRunner
from .services.site_generator import SiteGenerator
from .services.trigger_controller import TriggerController

logger = logging.getLogger(__name__)

_github_client: Optional[GitHubClient] = None
_generation_runner: Optional[GenerationRunner] = None


def get_github_client() -> GitHubClient:
    global _github_client
    if _github_client is None:
        _github_client = GitHubClient()
    return _github_client


def get_generation_runner() -> GenerationRunner:
    """Shared runner; its per-repository locks only work if there is one."""
    global _generation_runner
    if _generation_runner is None:
        github = get_github_client()
        _generation_runner = GenerationRunner(
            site_generator=SiteGenerator(LiteLLMTextGenerator()),
            gateway=github,
            guard=DeploymentGuard(
                github,
                poll_interval=settings.deployment_poll_interval,
                max_wait=settings.deployment_max_wait,
            ),
        )
    return _generation_runner


def get_trigger_controller() -> TriggerController:
    return TriggerController(mention=settings.command_mention)


async def close_clients() -> None:
    global _github_client, _generation_runner
    if _github_client is not None:
        await _github_client.close()
    _github_client = None
    _generation_runner = None
