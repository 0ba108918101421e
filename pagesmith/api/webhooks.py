"""GitHub webhook endpoint: turns repository events into generation runs."""

import asyncio
import hmac
import hashlib
import json
import logging
from typing import Any, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Request

from ..clients.github_client import GitHubClient, repository_from_payload
from ..core.config import settings
from ..dependencies import get_generation_runner, get_github_client, get_trigger_controller
from ..exceptions import WebhookValidationError
from ..schemas.generation import ChangeRequest, CommandVerb, RepositoryInfo, TriggerDecision
from ..schemas.site_config import SiteConfig
from ..schemas.webhook import DecisionSummary, WebhookResponse
from ..services.generation_runner import COMMIT_MARKER, CommentThread, GenerationRunner
from ..services.trigger_controller import TriggerController

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])


def _verify_github_signature(payload: bytes, signature_header: str, secret: str) -> bool:
    """
    Verify GitHub webhook HMAC-SHA256 signature.

    Args:
        payload: Raw request body bytes
        signature_header: Value of X-Hub-Signature-256 header
        secret: Webhook secret configured in GitHub

    Returns:
        True if signature is valid
    """
    if not signature_header or not signature_header.startswith("sha256="):
        return False

    expected_sig = hmac.new(
        secret.encode("utf-8"),
        payload,
        hashlib.sha256
    ).hexdigest()

    received_sig = signature_header[7:]  # Strip "sha256=" prefix
    return hmac.compare_digest(expected_sig, received_sig)


@router.post("/github", response_model=WebhookResponse)
async def github_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    github: GitHubClient = Depends(get_github_client),
    runner: GenerationRunner = Depends(get_generation_runner),
    controller: TriggerController = Depends(get_trigger_controller),
):
    """
    Receive GitHub ``push``, ``pull_request`` and ``issue_comment`` webhooks.

    Validates the signature using GITHUB_WEBHOOK_SECRET, resolves a trigger
    decision, and schedules a generation run in the background when the
    decision says so. The response reports the decision immediately.
    """
    body = await request.body()

    webhook_secret = settings.github_webhook_secret
    if webhook_secret:
        signature = request.headers.get("X-Hub-Signature-256", "")
        if not _verify_github_signature(body, signature, webhook_secret):
            logger.warning("Webhook signature verification failed")
            raise WebhookValidationError()
    else:
        logger.warning("GITHUB_WEBHOOK_SECRET not configured, skipping signature verification")

    try:
        payload = json.loads(body)
    except ValueError:
        raise WebhookValidationError("Invalid JSON payload", status_code=400)
    if not isinstance(payload, dict):
        raise WebhookValidationError("Webhook payload must be a JSON object", status_code=400)

    event_type = request.headers.get("X-GitHub-Event", "")
    if event_type == "ping":
        return WebhookResponse(status="ignored", message="pong")
    if event_type not in ("push", "pull_request", "issue_comment"):
        return WebhookResponse(
            status="ignored",
            message=f"Event type '{event_type}' ignored"
        )

    repo_data = payload.get("repository")
    if not isinstance(repo_data, dict) or not repo_data.get("name"):
        raise WebhookValidationError("No repository in payload", status_code=400)
    repo = repository_from_payload(repo_data)

    if event_type == "push":
        return await _handle_push(payload, repo, github, runner, controller, background_tasks)
    if event_type == "pull_request":
        return await _handle_pull_request(payload, repo, github, runner, controller, background_tasks)
    return await _handle_comment(payload, repo, github, runner, controller, background_tasks)


async def _handle_push(
    payload: dict[str, Any],
    repo: RepositoryInfo,
    github: GitHubClient,
    runner: GenerationRunner,
    controller: TriggerController,
    background_tasks: BackgroundTasks,
) -> WebhookResponse:
    ref = payload.get("ref") or ""
    if not ref.startswith("refs/heads/") or payload.get("deleted"):
        return WebhookResponse(status="ignored", message=f"Ref '{ref}' ignored")
    branch = ref[len("refs/heads/"):]

    commits = payload.get("commits") or []
    if not commits and payload.get("head_commit"):
        commits = [payload["head_commit"]]
    if commits and all(COMMIT_MARKER in (c.get("message") or "") for c in commits):
        logger.info("Skipping push of generated commits", extra={"repo": repo.full_name})
        return WebhookResponse(
            status="skipped",
            message=f"All commits carry '{COMMIT_MARKER}'"
        )

    changed_paths = sorted({
        path
        for commit in commits
        for key in ("added", "modified", "removed")
        for path in commit.get(key) or []
    })

    # Contents reads can lag just behind a push.
    if settings.push_sync_delay > 0:
        await asyncio.sleep(settings.push_sync_delay)
    config = await github.load_site_config(repo.owner, repo.name)

    decision = controller.resolve_on_push(branch, repo.default_branch, changed_paths, config)
    return _schedule(decision, repo, config, runner, background_tasks)


async def _handle_pull_request(
    payload: dict[str, Any],
    repo: RepositoryInfo,
    github: GitHubClient,
    runner: GenerationRunner,
    controller: TriggerController,
    background_tasks: BackgroundTasks,
) -> WebhookResponse:
    pr = payload.get("pull_request") or {}
    if payload.get("action") != "closed" or not pr.get("merged"):
        return WebhookResponse(
            status="ignored",
            message="Only merged pull requests are processed"
        )

    change = ChangeRequest(
        number=pr.get("number") or payload.get("number") or 0,
        title=pr.get("title") or "",
        labels=tuple(label.get("name", "") for label in pr.get("labels") or []),
        base_branch=(pr.get("base") or {}).get("ref", ""),
        merged=True,
    )
    config = await github.load_site_config(repo.owner, repo.name)
    decision = controller.resolve_on_merge(change, config)
    return _schedule(decision, repo, config, runner, background_tasks)


async def _handle_comment(
    payload: dict[str, Any],
    repo: RepositoryInfo,
    github: GitHubClient,
    runner: GenerationRunner,
    controller: TriggerController,
    background_tasks: BackgroundTasks,
) -> WebhookResponse:
    if payload.get("action") != "created":
        return WebhookResponse(status="ignored", message="Only new comments are processed")

    comment = payload.get("comment") or {}
    if (comment.get("user") or {}).get("type") == "Bot":
        return WebhookResponse(status="ignored", message="Comments from bots are ignored")

    body = comment.get("body") or ""
    command = controller.parse_comment(body)
    if command is None:
        return WebhookResponse(status="ignored", message="No command found")

    issue_number = (payload.get("issue") or {}).get("number")
    if not issue_number:
        raise WebhookValidationError("No issue in payload", status_code=400)

    logger.info(
        "Command detected",
        extra={
            "repo": repo.full_name,
            "command": command.verb.value,
            "author": (comment.get("user") or {}).get("login"),
        },
    )

    config = await github.load_site_config(repo.owner, repo.name)

    if command.verb in (CommandVerb.HELP, CommandVerb.CONFIG):
        reply = (
            controller.help_message()
            if command.verb == CommandVerb.HELP
            else controller.config_message(config)
        )
        await github.create_comment(repo.owner, repo.name, issue_number, reply)
        return WebhookResponse(status="replied", message=f"Posted {command.verb.value} reply")

    decision = controller.resolve_on_comment(body, config)
    return _schedule(
        decision, repo, config, runner, background_tasks, CommentThread(issue_number)
    )


def _schedule(
    decision: TriggerDecision,
    repo: RepositoryInfo,
    config: SiteConfig,
    runner: GenerationRunner,
    background_tasks: BackgroundTasks,
    reply_to: Optional[CommentThread] = None,
) -> WebhookResponse:
    summary = DecisionSummary.from_decision(decision)
    if not decision.should_generate:
        logger.info("No generation", extra={"repo": repo.full_name, "reason": decision.reason})
        return WebhookResponse(status="skipped", decision=summary, message=decision.reason)

    background_tasks.add_task(runner.run, repo, decision, config, reply_to)
    logger.info(
        "Generation scheduled",
        extra={
            "repo": repo.full_name,
            "trigger_type": decision.trigger_type.value,
            "generation_type": decision.generation_type.value,
        },
    )
    return WebhookResponse(
        status="scheduled",
        decision=summary,
        message=f"{decision.generation_type.value} generation scheduled for {repo.full_name}"
    )
