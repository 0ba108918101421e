"""Async client for the GitHub REST API.

Covers what the service needs: repository metadata and content, the
``.pagesmith.json`` document, Pages deployment status, issue comments, and
publishing generated files as a branch + commit + pull request.
"""

import asyncio
import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Protocol

import httpx

from ..core.config import settings
from ..exceptions import GitHubAPIError
from ..schemas.generation import DeploymentState, DeploymentTarget, RepositoryInfo
from ..schemas.site_config import (
    CONFIG_FILE_PATH,
    SiteConfig,
    parse_site_config,
    validate_site_config,
)

logger = logging.getLogger(__name__)

# Retry configuration for transient failures (connection errors, 5xx).
MAX_RETRIES = 3
RETRY_BASE_DELAY = 1.0  # seconds; exponential: 1s, 2s, 4s

IN_PROGRESS_STATES = frozenset({"pending", "queued", "in_progress"})
PUBLISH_BRANCH_PREFIX = "pagesmith/update-site"


class SitePublisher(Protocol):
    async def publish(self, repo: RepositoryInfo, files: dict[str, str], commit_message: str) -> str:
        """Publish ``files`` and return a URL describing the result."""
        ...


class GitHubClient:
    """Async client wrapping the GitHub REST API.

    Configuration comes from settings (GITHUB_TOKEN, GITHUB_API_URL,
    GITHUB_API_TIMEOUT) unless passed explicitly.
    """

    def __init__(
        self,
        token: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        retry_base_delay: float = RETRY_BASE_DELAY,
    ) -> None:
        self.token = token if token is not None else settings.github_token
        self.base_url = base_url or settings.github_api_url
        self.timeout = timeout or settings.github_api_timeout
        self.retry_base_delay = retry_base_delay
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            }
            if self.token:
                headers["Authorization"] = f"Bearer {self.token}"
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def _request_with_retry(
        self,
        method: str,
        path: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Execute a request, retrying connection errors and 5xx responses.

        Backoff is exponential (1s, 2s, 4s). Client errors (4xx) are not
        retried. Every failure surfaces as ``GitHubAPIError``.
        """
        client = await self._get_client()
        last_error: Optional[GitHubAPIError] = None

        for attempt in range(MAX_RETRIES):
            try:
                resp = await client.request(method, path, **kwargs)
            except (httpx.ConnectError, httpx.TimeoutException) as exc:
                last_error = GitHubAPIError(f"{method} {path} failed: {exc}", path=path)
            else:
                if resp.status_code < 400:
                    return resp
                if resp.status_code < 500:
                    raise GitHubAPIError(
                        f"{method} {path} returned {resp.status_code}: {_error_message(resp)}",
                        status_code=resp.status_code,
                        path=path,
                    )
                # 5xx: retry
                last_error = GitHubAPIError(
                    f"{method} {path} returned {resp.status_code}",
                    status_code=resp.status_code,
                    path=path,
                )

            if attempt < MAX_RETRIES - 1:
                delay = self.retry_base_delay * (2 ** attempt)
                logger.warning(
                    "GitHub request %s %s failed (attempt %d/%d), retrying in %.1fs: %s",
                    method, path, attempt + 1, MAX_RETRIES, delay, last_error,
                )
                await asyncio.sleep(delay)

        raise last_error  # type: ignore[misc]

    # ------------------------------------------------------------------
    # Repository content
    # ------------------------------------------------------------------

    async def get_repository(self, owner: str, repo: str) -> RepositoryInfo:
        """Repository metadata. Maps to GET /repos/{owner}/{repo}."""
        resp = await self._request_with_retry("GET", f"/repos/{owner}/{repo}")
        return repository_from_payload(resp.json())

    async def get_file(self, owner: str, repo: str, path: str) -> Optional[str]:
        """Decoded file content, or None when the file does not exist."""
        try:
            resp = await self._request_with_retry("GET", f"/repos/{owner}/{repo}/contents/{path}")
        except GitHubAPIError as e:
            if e.http_status == 404:
                return None
            raise
        return _decode_content(resp.json())

    async def get_readme(self, owner: str, repo: str) -> Optional[str]:
        """README text. Missing or unreadable READMEs give None."""
        try:
            resp = await self._request_with_retry("GET", f"/repos/{owner}/{repo}/readme")
        except GitHubAPIError as e:
            if e.http_status == 404:
                logger.info("No README found", extra={"repo": f"{owner}/{repo}"})
            else:
                logger.warning(
                    "Failed to fetch README, proceeding without it",
                    extra={"repo": f"{owner}/{repo}", "error": str(e)},
                )
            return None
        return _decode_content(resp.json())

    async def load_site_config(self, owner: str, repo: str) -> SiteConfig:
        """Read ``.pagesmith.json``, falling back to defaults.

        Validation findings are logged; they never stop a run.
        """
        full_name = f"{owner}/{repo}"
        try:
            text = await self.get_file(owner, repo, CONFIG_FILE_PATH)
        except GitHubAPIError as e:
            logger.warning(
                "Failed to load site config, using defaults",
                extra={"repo": full_name, "error": str(e)},
            )
            return SiteConfig()
        if text is None:
            logger.info("No site config found, using defaults", extra={"repo": full_name})
            return SiteConfig()

        try:
            raw = json.loads(text)
        except ValueError as e:
            logger.warning(
                "Site config is not valid JSON, using defaults",
                extra={"repo": full_name, "error": str(e)},
            )
            return SiteConfig()

        result = validate_site_config(raw)
        for error in result.errors:
            logger.warning("Site config error", extra={"repo": full_name, "detail": error})
        for warning in result.warnings:
            logger.info("Site config warning", extra={"repo": full_name, "detail": warning})
        return parse_site_config(raw)

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------

    async def deployment_state(self, target: DeploymentTarget) -> DeploymentState:
        """Current state of the latest deployment to ``target.environment``."""
        base = f"/repos/{target.owner}/{target.repo}/deployments"
        resp = await self._request_with_retry(
            "GET", base, params={"environment": target.environment, "per_page": 1},
        )
        deployments = resp.json()
        if not deployments:
            return DeploymentState.IDLE

        resp = await self._request_with_retry(
            "GET", f"{base}/{deployments[0]['id']}/statuses", params={"per_page": 1},
        )
        statuses = resp.json()
        if not statuses:
            # Created but not yet picked up.
            return DeploymentState.IN_PROGRESS

        state = statuses[0].get("state")
        logger.info("Latest deployment status", extra={"target": str(target), "state": state})
        if state in IN_PROGRESS_STATES:
            return DeploymentState.IN_PROGRESS
        return DeploymentState.IDLE

    # ------------------------------------------------------------------
    # Comments
    # ------------------------------------------------------------------

    async def create_comment(self, owner: str, repo: str, issue_number: int, body: str) -> int:
        """Post a comment and return its id."""
        resp = await self._request_with_retry(
            "POST", f"/repos/{owner}/{repo}/issues/{issue_number}/comments", json={"body": body},
        )
        return resp.json()["id"]

    async def update_comment(self, owner: str, repo: str, comment_id: int, body: str) -> None:
        await self._request_with_retry(
            "PATCH", f"/repos/{owner}/{repo}/issues/comments/{comment_id}", json={"body": body},
        )

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    async def publish(self, repo: RepositoryInfo, files: dict[str, str], commit_message: str) -> str:
        """Commit ``files`` on a fresh branch and open a pull request.

        Returns the pull request URL. If the pull request cannot be opened
        the branch is deleted again.
        """
        owner, name, base_branch = repo.owner, repo.name, repo.default_branch
        prefix = f"/repos/{owner}/{name}"

        resp = await self._request_with_retry("GET", f"{prefix}/git/ref/heads/{base_branch}")
        parent_sha = resp.json()["object"]["sha"]

        tree = [
            {"path": path, "mode": "100644", "type": "blob", "content": content}
            for path, content in sorted(files.items())
        ]
        resp = await self._request_with_retry(
            "POST", f"{prefix}/git/trees", json={"base_tree": parent_sha, "tree": tree},
        )
        tree_sha = resp.json()["sha"]

        resp = await self._request_with_retry(
            "POST", f"{prefix}/git/commits",
            json={"message": commit_message, "tree": tree_sha, "parents": [parent_sha]},
        )
        commit_sha = resp.json()["sha"]

        branch = f"{PUBLISH_BRANCH_PREFIX}-{datetime.now(timezone.utc).strftime('%Y%m%d-%H%M%S')}"
        try:
            await self._request_with_retry(
                "POST", f"{prefix}/git/refs",
                json={"ref": f"refs/heads/{branch}", "sha": commit_sha},
            )
        except GitHubAPIError as e:
            if e.http_status == 422:
                raise GitHubAPIError(
                    f"Branch {branch} already exists; retry in a moment",
                    status_code=422,
                    path=f"{prefix}/git/refs",
                ) from e
            raise
        logger.info("Created branch", extra={"repo": repo.full_name, "branch": branch})

        try:
            resp = await self._request_with_retry(
                "POST", f"{prefix}/pulls",
                json={
                    "title": commit_message.splitlines()[0],
                    "head": branch,
                    "base": base_branch,
                    "body": _pull_request_body(files),
                },
            )
        except GitHubAPIError:
            logger.error(
                "Pull request creation failed, deleting branch",
                extra={"repo": repo.full_name, "branch": branch},
            )
            try:
                await self._request_with_retry("DELETE", f"{prefix}/git/refs/heads/{branch}")
            except GitHubAPIError as cleanup_error:
                logger.warning(
                    "Failed to delete orphaned branch",
                    extra={"repo": repo.full_name, "branch": branch, "error": str(cleanup_error)},
                )
            raise

        pr = resp.json()
        logger.info(
            "Created pull request",
            extra={"repo": repo.full_name, "number": pr.get("number")},
        )
        return pr["html_url"]

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client and not self._client.is_closed:
            await self._client.aclose()


def repository_from_payload(data: dict[str, Any]) -> RepositoryInfo:
    """Build ``RepositoryInfo`` from a REST or webhook ``repository`` object."""
    owner = data.get("owner") or {}
    owner_login = owner.get("login") or owner.get("name") or ""
    return RepositoryInfo(
        owner=owner_login,
        name=data["name"],
        full_name=data.get("full_name") or f"{owner_login}/{data['name']}",
        html_url=data.get("html_url") or "",
        default_branch=data.get("default_branch") or "main",
        description=data.get("description") or "",
        language=data.get("language") or "",
        topics=tuple(data.get("topics") or ()),
    )


def _decode_content(data: Any) -> Optional[str]:
    if not isinstance(data, dict) or "content" not in data:
        return None
    return base64.b64decode(data["content"]).decode("utf-8", errors="replace")


def _error_message(resp: httpx.Response) -> str:
    try:
        return resp.json().get("message", resp.text)
    except (ValueError, AttributeError):
        return resp.text


def _pull_request_body(files: dict[str, str]) -> str:
    listing = "\n".join(f"- `{path}`" for path in sorted(files))
    return (
        "## Pagesmith site update\n\n"
        "This pull request updates the generated site.\n\n"
        f"### Files\n{listing}\n"
    )
