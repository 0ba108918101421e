"""Shared test fixtures for the Pagesmith test suite.

No test talks to GitHub or a model provider: the text generator is a
scripted fake, and the API tests override the GitHub client and the
generation runner through ``app.dependency_overrides``.
"""

import os

# Configure settings before any app imports.
os.environ["GITHUB_WEBHOOK_SECRET"] = "test-secret"
os.environ["GITHUB_TOKEN"] = "test-token"
os.environ["LLM_MODEL"] = "test/model"
os.environ["LOG_FORMAT"] = "text"
os.environ["PUSH_SYNC_DELAY"] = "0"

import hashlib
import hmac
import json
from typing import Callable, Optional, Union
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from pagesmith.clients.circuit_breaker import reset_all
from pagesmith.clients.llm_client import GenerationResult
from pagesmith.dependencies import (
    get_generation_runner,
    get_github_client,
    get_trigger_controller,
)
from pagesmith.main import app
from pagesmith.middleware.request_context import _rate_buckets
from pagesmith.schemas.generation import (
    ColorPalette,
    DesignSystem,
    RepositoryAnalysis,
    RepositoryInfo,
    SectionContext,
)
from pagesmith.schemas.site_config import SiteConfig
from pagesmith.services.trigger_controller import TriggerController

WEBHOOK_SECRET = "test-secret"

Reply = Union[str, Exception, Callable[[str], str]]


class ScriptedGenerator:
    """``TextGenerator`` fake.

    ``replies`` is consumed in call order; an entry may be a string, an
    exception to raise, or a function of the prompt. ``route`` picks a
    reply by prompt content instead, for concurrent callers.
    """

    def __init__(self, replies: Optional[list[Reply]] = None, route: Optional[Callable[[str], Reply]] = None):
        self.replies = list(replies or [])
        self.route = route
        self.calls: list[dict] = []

    async def generate_text(self, prompt, *, temperature=None, system=None, max_tokens=None):
        self.calls.append(
            {"prompt": prompt, "temperature": temperature, "system": system, "max_tokens": max_tokens}
        )
        reply = self.route(prompt) if self.route else self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        if callable(reply):
            reply = reply(prompt)
        return GenerationResult(text=reply)


def sign(body: bytes, secret: str = WEBHOOK_SECRET) -> str:
    return "sha256=" + hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


@pytest.fixture()
def repo_info() -> RepositoryInfo:
    return RepositoryInfo(
        owner="octo",
        name="widget",
        full_name="octo/widget",
        html_url="https://github.com/octo/widget",
        default_branch="main",
        description="A tiny widget library",
        language="Python",
        topics=("widgets",),
        readme="# Widget\n\nInstall with pip.",
    )


@pytest.fixture()
def analysis() -> RepositoryAnalysis:
    return RepositoryAnalysis(
        name="widget",
        description="A tiny widget library",
        project_type="library",
        primary_language="Python",
        audience="developers",
        style="minimal",
        key_features=("fast", "small"),
    )


@pytest.fixture()
def design() -> DesignSystem:
    return DesignSystem(
        light=ColorPalette("emerald-600", "teal-600", "amber-500", "white", "slate-900"),
        dark=ColorPalette("emerald-400", "teal-400", "amber-400", "slate-950", "slate-50"),
    )


@pytest.fixture()
def section_context(analysis, design, repo_info) -> SectionContext:
    return SectionContext(analysis=analysis, design=design, repo=repo_info)


@pytest.fixture(autouse=True)
def _reset_breakers():
    reset_all()
    yield
    reset_all()


# ---------------------------------------------------------------------------
# API fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_github():
    github = MagicMock()
    github.load_site_config = AsyncMock(return_value=SiteConfig())
    github.create_comment = AsyncMock(return_value=1)
    github.update_comment = AsyncMock(return_value=None)
    return github


@pytest.fixture()
def fake_runner():
    runner = MagicMock()
    runner.run = AsyncMock()
    return runner


@pytest.fixture()
def client(fake_github, fake_runner):
    """TestClient with GitHub and the generation runner replaced by mocks."""
    app.dependency_overrides[get_github_client] = lambda: fake_github
    app.dependency_overrides[get_generation_runner] = lambda: fake_runner
    app.dependency_overrides[get_trigger_controller] = lambda: TriggerController("@pagesmith")
    _rate_buckets.clear()  # Reset rate limiter so tests don't hit 429
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture()
def post_event(client):
    """Send a signed webhook delivery."""

    def _post(event: str, payload: dict, signature: Optional[str] = None):
        body = json.dumps(payload).encode()
        return client.post(
            "/api/webhooks/github",
            content=body,
            headers={
                "Content-Type": "application/json",
                "X-GitHub-Event": event,
                "X-Hub-Signature-256": signature if signature is not None else sign(body),
            },
        )

    return _post
