"""Clients for the text-generation provider and the GitHub API."""

from .github_client import GitHubClient, SitePublisher
from .llm_client import GenerationResult, LiteLLMTextGenerator, TextGenerator

__all__ = [
    "GitHubClient",
    "SitePublisher",
    "GenerationResult",
    "LiteLLMTextGenerator",
    "TextGenerator",
]
