"""Runs one generate-and-publish cycle for a repository.

At most one run per repository is in flight inside this process. The
deployment guard wraps generation and publishing together, so a run that
fails at any stage publishes nothing.
"""

import asyncio
import contextlib
import dataclasses
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from ..clients.github_client import SitePublisher
from ..core.config import settings
from ..core.logging_config import repository_var
from ..exceptions import PagesmithError
from ..schemas.generation import (
    DeploymentTarget,
    GenerationType,
    RepositoryInfo,
    TriggerDecision,
)
from ..schemas.site_config import SiteConfig
from .deployment_guard import DeploymentGuard
from .site_generator import SiteGenerator

logger = logging.getLogger(__name__)

# Commits carrying this marker never trigger a run.
COMMIT_MARKER = "[skip pagesmith]"
COMMIT_TITLE = "chore: update Pagesmith generated site"


class RepositoryGateway(Protocol):
    async def get_readme(self, owner: str, repo: str) -> Optional[str]: ...

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> int: ...

    async def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> None: ...


@dataclass(frozen=True)
class CommentThread:
    """Issue or pull request a comment command came from."""

    issue_number: int


@dataclass(frozen=True)
class RunOutcome:
    status: str  # "published", "skipped" or "failed"
    message: str
    url: Optional[str] = None


class GenerationRunner:
    def __init__(
        self,
        site_generator: SiteGenerator,
        gateway: RepositoryGateway,
        guard: DeploymentGuard,
        publisher: Optional[SitePublisher] = None,
        deployment_environment: Optional[str] = None,
    ):
        self.site_generator = site_generator
        self.gateway = gateway
        self.guard = guard
        self.publisher = publisher if publisher is not None else gateway
        self.deployment_environment = deployment_environment or settings.deployment_environment
        self._locks: dict[str, asyncio.Lock] = {}
        self._lock_users: dict[str, int] = {}

    @contextlib.asynccontextmanager
    async def _exclusive(self, repo: RepositoryInfo, log_extra: dict):
        """Hold the repository's lock. It is dropped once nobody holds or awaits it."""
        key = repo.full_name
        lock = self._locks.setdefault(key, asyncio.Lock())
        if lock.locked():
            logger.info("Waiting for the previous run on this repository", extra=log_extra)
        self._lock_users[key] = self._lock_users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[key] -= 1
            if not self._lock_users[key]:
                del self._lock_users[key]
                del self._locks[key]

    async def run(
        self,
        repo: RepositoryInfo,
        decision: TriggerDecision,
        site_config: SiteConfig,
        reply_to: Optional[CommentThread] = None,
    ) -> RunOutcome:
        token = repository_var.set(repo.full_name)
        try:
            return await self._run(repo, decision, site_config, reply_to)
        finally:
            repository_var.reset(token)

    async def _run(
        self,
        repo: RepositoryInfo,
        decision: TriggerDecision,
        site_config: SiteConfig,
        reply_to: Optional[CommentThread],
    ) -> RunOutcome:
        log_extra = {
            "repo": repo.full_name,
            "trigger_type": decision.trigger_type.value,
            "generation_type": decision.generation_type.value,
        }

        if not decision.should_generate:
            return RunOutcome("skipped", decision.reason)

        if not site_config.enabled and decision.generation_type != GenerationType.FORCE:
            message = "Generation skipped: disabled in config (`enabled: false`)"
            logger.info(message, extra=log_extra)
            if reply_to is not None:
                await self._post(repo, reply_to, f"**Pagesmith** {message}")
            return RunOutcome("skipped", message)

        async with self._exclusive(repo, log_extra):
            status_comment = None
            if reply_to is not None:
                status_comment = await self._post(
                    repo, reply_to,
                    "**Pagesmith** site generation starting...\n\nThis may take a minute.",
                )

            started = time.monotonic()
            target = DeploymentTarget(repo.owner, repo.name, self.deployment_environment)
            try:
                url = await self.guard.with_guard(
                    target,
                    lambda: self._generate_and_publish(repo, decision, site_config),
                )
            except Exception as e:
                message = failure_message(e)
                if isinstance(e, PagesmithError):
                    logger.error(message, extra={**log_extra, "error_code": e.error_code.value})
                else:
                    logger.exception(message, extra=log_extra)
                if reply_to is not None:
                    await self._post(repo, reply_to, f"**Pagesmith** {message}", status_comment)
                return RunOutcome("failed", message)

            duration = round(time.monotonic() - started)
            message = f"Site generated successfully in {duration}s: {url}"
            logger.info("Site published", extra={**log_extra, "url": url, "duration_s": duration})
            if reply_to is not None:
                await self._post(repo, reply_to, f"**Pagesmith** {message}", status_comment)
            return RunOutcome("published", message, url)

    async def _generate_and_publish(
        self, repo: RepositoryInfo, decision: TriggerDecision, site_config: SiteConfig
    ) -> str:
        if not repo.readme:
            readme = await self.gateway.get_readme(repo.owner, repo.name)
            if readme:
                repo = dataclasses.replace(repo, readme=readme)

        site = await self.site_generator.generate(repo, site_config, decision.generation_type)
        return await self.publisher.publish(repo, site.files, commit_message(decision))

    async def _post(
        self,
        repo: RepositoryInfo,
        thread: CommentThread,
        body: str,
        comment_id: Optional[int] = None,
    ) -> Optional[int]:
        """Create or update a comment; failures are logged, not raised."""
        try:
            if comment_id is not None:
                await self.gateway.update_comment(repo.owner, repo.name, comment_id, body)
                return comment_id
            return await self.gateway.create_comment(
                repo.owner, repo.name, thread.issue_number, body
            )
        except PagesmithError as e:
            logger.warning(
                "Failed to post status comment",
                extra={"repo": repo.full_name, "issue": thread.issue_number, "error": e.message},
            )
            return None


def commit_message(decision: TriggerDecision) -> str:
    return (
        f"{COMMIT_TITLE} {COMMIT_MARKER}\n\n"
        f"Generation type: {decision.generation_type.value}\n"
        f"Trigger: {decision.trigger_type.value} ({decision.reason})"
    )


def failure_message(error: BaseException) -> str:
    """One line naming the failed stage, suitable for logs and comments."""
    if isinstance(error, PagesmithError):
        return f"Site generation failed: {error.message}"
    return f"Site generation failed: unexpected {type(error).__name__}: {error}"
