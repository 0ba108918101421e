"""Waits for an in-flight Pages deployment before publishing a new one.

The hosting side offers no lock, so this is advisory only: a deployment
that starts between the last poll and the publish is not detected.
"""

import asyncio
import logging
import time
from typing import Awaitable, Callable, Protocol, TypeVar

from ..exceptions import GitHubAPIError
from ..schemas.generation import DeploymentState, DeploymentTarget

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POLL_INTERVAL = 10.0
DEFAULT_MAX_WAIT = 300.0


class DeploymentStatusSource(Protocol):
    async def deployment_state(self, target: DeploymentTarget) -> DeploymentState:
        ...


class DeploymentGuard:
    def __init__(
        self,
        status_source: DeploymentStatusSource,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float = DEFAULT_MAX_WAIT,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.status_source = status_source
        self.poll_interval = poll_interval
        self.max_wait = max_wait
        self._sleep = sleep
        self._clock = clock

    async def with_guard(self, target: DeploymentTarget, action: Callable[[], Awaitable[T]]) -> T:
        """Run ``action`` once no deployment is in progress, or after ``max_wait``.

        Exceptions from ``action`` propagate; polling errors count as idle.
        """
        if await self._poll(target) == DeploymentState.IN_PROGRESS:
            await self._wait_until_idle(target)
        logger.info("Starting guarded action", extra={"target": str(target)})
        return await action()

    async def _wait_until_idle(self, target: DeploymentTarget) -> None:
        interval = min(self.poll_interval, self.max_wait / 10)
        started = self._clock()
        logger.info("Waiting for previous deployment to complete", extra={"target": str(target)})

        while self._clock() - started < self.max_wait:
            await self._sleep(interval)
            if await self._poll(target) == DeploymentState.IDLE:
                logger.info("Previous deployment completed", extra={"target": str(target)})
                return
            logger.info(
                "Deployment still in progress",
                extra={"target": str(target), "retry_in": interval},
            )

        logger.warning(
            "Timed out waiting for deployment, proceeding anyway",
            extra={"target": str(target), "max_wait": self.max_wait},
        )

    async def _poll(self, target: DeploymentTarget) -> DeploymentState:
        try:
            return await self.status_source.deployment_state(target)
        except GitHubAPIError as e:
            _log_poll_error(target, e, e.http_status)
        except Exception as e:
            _log_poll_error(target, e, None)
        return DeploymentState.IDLE


def _log_poll_error(target: DeploymentTarget, error: Exception, status: object) -> None:
    extra = {"target": str(target), "github_status": status, "error": str(error)}
    if status in (401, 403):
        logger.error(
            "Permission error checking deployment status; proceeding without check",
            extra=extra,
        )
    elif status == 429:
        logger.warning("Rate limited checking deployment status; proceeding", extra=extra)
    elif isinstance(status, int) and status >= 500:
        logger.warning("Transient error checking deployment status; proceeding", extra=extra)
    else:
        logger.warning("Failed to check deployment status; proceeding", extra=extra)
