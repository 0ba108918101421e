"""Evaluate/refine loop that raises page quality and keeps the best variant.

Each iteration refines the most recent candidate using that candidate's
evaluation. Only a strictly higher score replaces the kept best, so a
regression in a later iteration never loses an earlier good page.
"""

import logging
from dataclasses import dataclass, field
from typing import Optional

from ..clients.llm_client import TextGenerator
from ..exceptions import MalformedResponseError, ProviderError
from ..schemas.generation import EvaluationResult, RefinementResult
from .response_cleaner import clean_html_response, parse_json_object, to_score

logger = logging.getLogger(__name__)

IMPROVEMENT_BASELINE_SCORE = 5
MIN_REFINED_HTML_LENGTH = 100
EVALUATION_TEMPERATURE = 0.3
REFINEMENT_TEMPERATURE = 0.7
HTML_PREVIEW_CHARS = 12000


@dataclass
class RefinementConfig:
    max_iterations: int = 3
    target_score: int = 8
    project_name: str = ""
    project_description: str = ""
    requirements: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        if self.max_iterations < 0:
            raise ValueError("max_iterations must be 0 or greater")
        if not 1 <= self.target_score <= 10:
            raise ValueError("target_score must be between 1 and 10")


class QualityRefiner:
    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def evaluate_html(self, html: str, config: RefinementConfig) -> EvaluationResult:
        """Score ``html`` on a 1-10 scale.

        Raises:
            MalformedResponseError: if the response has no numeric ``score``.
        """
        try:
            result = await self.generator.generate_text(
                _evaluation_prompt(html, config),
                temperature=EVALUATION_TEMPERATURE,
            )
        except ProviderError as e:
            raise e.in_stage("evaluate_html", project=config.project_name) from e
        parsed = parse_json_object(result.text)
        score = to_score(parsed.get("score")) if parsed else None
        if parsed is None or score is None:
            raise MalformedResponseError(
                "evaluate_html", "expected a JSON object with a numeric score",
                raw_preview=result.text[:200],
            )

        return EvaluationResult(
            score=score,
            feedback=str(parsed.get("feedback") or ""),
            strengths=_str_list(parsed.get("strengths")),
            improvements=_str_list(parsed.get("improvements")),
        )

    async def refine_html(
        self, html: str, evaluation: EvaluationResult, config: RefinementConfig
    ) -> str:
        """Ask for an improved page addressing ``evaluation``.

        Raises:
            MalformedResponseError: if the output is not a usable document.
        """
        try:
            result = await self.generator.generate_text(
                _refinement_prompt(html, evaluation, config),
                temperature=REFINEMENT_TEMPERATURE,
            )
        except ProviderError as e:
            raise e.in_stage("refine_html", project=config.project_name) from e
        try:
            refined = clean_html_response(result.text)
        except ValueError as e:
            raise MalformedResponseError(
                "refine_html", str(e), raw_preview=result.text[:200]
            ) from e
        if len(refined) < MIN_REFINED_HTML_LENGTH:
            raise MalformedResponseError(
                "refine_html",
                f"refined HTML is only {len(refined)} characters",
                raw_preview=refined[:200],
            )
        return refined

    async def self_refine(
        self, initial_html: str, config: Optional[RefinementConfig] = None
    ) -> RefinementResult:
        config = config or RefinementConfig()

        evaluation = await self.evaluate_html(initial_html, config)
        best_html, best_eval = initial_html, evaluation
        current_html = initial_html
        iterations = 0
        logger.info(
            "Initial evaluation",
            extra={"score": evaluation.score, "target_score": config.target_score},
        )

        while evaluation.score < config.target_score and iterations < config.max_iterations:
            iterations += 1
            current_html = await self.refine_html(current_html, evaluation, config)
            evaluation = await self.evaluate_html(current_html, config)
            logger.info(
                "Refinement iteration evaluated",
                extra={
                    "iteration": iterations,
                    "score": evaluation.score,
                    "best_score": best_eval.score,
                },
            )
            if evaluation.score > best_eval.score:
                best_html, best_eval = current_html, evaluation

        return RefinementResult(
            html=best_html,
            evaluation=best_eval,
            iterations=iterations,
            improved=best_eval.score > IMPROVEMENT_BASELINE_SCORE,
        )


def _evaluation_prompt(html: str, config: RefinementConfig) -> str:
    return f"""You are an expert web design reviewer. Evaluate this project landing page.

PROJECT: {config.project_name or "(unnamed)"}
DESCRIPTION: {config.project_description or "(none)"}
{_requirements_block(config.requirements)}
Score the page from 1 to 10 considering:
1. Visual design: color harmony, typography, spacing, visual hierarchy
2. Content quality: clarity, relevance to the project, persuasiveness
3. User experience: navigation, readability, responsive layout
4. Technical quality: semantic HTML, accessibility, consistent Tailwind usage
5. Brand alignment: does the page fit the project's audience and style

HTML:
```html
{html[:HTML_PREVIEW_CHARS]}
```

Respond with JSON only:
{{
  "score": <1-10>,
  "feedback": "overall assessment",
  "strengths": ["..."],
  "improvements": ["specific, actionable change", "..."]
}}"""


def _refinement_prompt(html: str, evaluation: EvaluationResult, config: RefinementConfig) -> str:
    improvements = "\n".join(
        f"{i}. {item}" for i, item in enumerate(evaluation.improvements, start=1)
    ) or "1. Improve overall visual polish and clarity"
    return f"""You are an expert web designer. Improve the following HTML page based on feedback.

PROJECT: {config.project_name or "(unnamed)"}
DESCRIPTION: {config.project_description or "(none)"}
{_requirements_block(config.requirements)}
CURRENT SCORE: {evaluation.score}/10
FEEDBACK: {evaluation.feedback}

IMPROVEMENTS TO MAKE:
{improvements}

CURRENT HTML:
```html
{html}
```

REQUIREMENTS:
1. Keep using Tailwind CSS classes (loaded via CDN)
2. Keep every section and its id so navigation links still work
3. Make it responsive (mobile-first)
4. No external images - use gradients or emoji as placeholders

OUTPUT: Return ONLY the complete HTML document, no explanation. Start with <!DOCTYPE html>."""


def _requirements_block(requirements: list[str]) -> str:
    if not requirements:
        return ""
    return "REQUIREMENTS FROM THE OWNER:\n" + "\n".join(f"- {r}" for r in requirements) + "\n"


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float))]
