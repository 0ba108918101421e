"""Value types passed between the generation stages.

Everything here is created per event and thrown away once the event has
been handled; nothing is persisted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class TriggerType(str, Enum):
    AUTO = "auto"
    MANUAL = "manual"
    LABEL = "label"
    COMMENT = "comment"
    SKIP = "skip"


class GenerationType(str, Enum):
    FULL = "full"
    PREVIEW = "preview"
    FORCE = "force"


class CommandVerb(str, Enum):
    GENERATE = "generate"
    PREVIEW = "preview"
    CONFIG = "config"
    HELP = "help"


class DeploymentState(str, Enum):
    IDLE = "idle"
    IN_PROGRESS = "in_progress"


class ThemeMode(str, Enum):
    LIGHT = "light"
    DARK = "dark"


@dataclass(frozen=True)
class TriggerDecision:
    """Outcome of one trigger resolution pass."""

    should_generate: bool
    trigger_type: TriggerType
    generation_type: GenerationType
    reason: str


@dataclass(frozen=True)
class ParsedCommand:
    """A ``<mention> <verb> [--flag|--key=value ...]`` comment command."""

    verb: CommandVerb
    options: dict[str, str] = field(default_factory=dict)
    command: str = ""


@dataclass(frozen=True)
class ChangeRequest:
    """The parts of a merged pull request the trigger rules look at."""

    number: int
    title: str = ""
    labels: tuple[str, ...] = ()
    base_branch: str = ""
    merged: bool = True


@dataclass(frozen=True)
class SectionPlan:
    """Ordered section identifiers for one run: ``hero`` first, ``footer`` last."""

    sections: tuple[str, ...]
    reasoning: str
    used_fallback: bool = False


@dataclass(frozen=True)
class GeneratedSection:
    """One sanitized section fragment; ``order`` is its plan index."""

    type: str
    html: str
    order: int


@dataclass(frozen=True)
class EvaluationResult:
    score: int  # 1-10
    feedback: str
    strengths: list[str] = field(default_factory=list)
    improvements: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class RefinementResult:
    html: str
    evaluation: EvaluationResult
    iterations: int
    improved: bool


@dataclass(frozen=True)
class RepositoryInfo:
    """Repository metadata fetched from the hosting API."""

    owner: str
    name: str
    full_name: str
    html_url: str
    default_branch: str = "main"
    description: str = ""
    language: str = ""
    topics: tuple[str, ...] = ()
    readme: str = ""


@dataclass(frozen=True)
class RepositoryAnalysis:
    name: str
    description: str
    project_type: str
    primary_language: str
    audience: str
    style: str
    key_features: tuple[str, ...] = ()


@dataclass(frozen=True)
class ColorPalette:
    primary: str
    secondary: str
    accent: str
    background: str
    text: str


@dataclass(frozen=True)
class DesignSystem:
    """Shared visual language; a palette may be missing for either mode."""

    light: Optional[ColorPalette] = None
    dark: Optional[ColorPalette] = None
    heading_font: str = "Inter, system-ui, sans-serif"
    body_font: str = "Inter, system-ui, sans-serif"
    layout: str = "hero-centered"

    def palette(self, mode: ThemeMode) -> Optional[ColorPalette]:
        return self.light if mode == ThemeMode.LIGHT else self.dark


@dataclass(frozen=True)
class SectionContext:
    """Shared inputs for every section prompt in one run."""

    analysis: RepositoryAnalysis
    design: DesignSystem
    repo: RepositoryInfo
    theme_mode: ThemeMode = ThemeMode.DARK
    instructions: Optional[str] = None


@dataclass(frozen=True)
class DeploymentTarget:
    owner: str
    repo: str
    environment: str = "github-pages"

    def __str__(self) -> str:
        return f"{self.owner}/{self.repo}@{self.environment}"


@dataclass
class GeneratedSite:
    """Output of one run: repository path -> file content."""

    files: dict[str, str]
    plan: SectionPlan
    refinement: Optional[RefinementResult] = None
