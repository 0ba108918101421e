"""Chooses which page sections a run will generate, and in what order."""

import logging
from typing import Any, Optional

from ..clients.llm_client import TextGenerator
from ..exceptions import ProviderError
from ..schemas.generation import RepositoryAnalysis, SectionPlan
from .response_cleaner import parse_json_object

logger = logging.getLogger(__name__)

FIRST_SECTION = "hero"
LAST_SECTION = "footer"
FALLBACK_SECTIONS = (FIRST_SECTION, "features", LAST_SECTION)
README_EXCERPT_CHARS = 1500
PLAN_TEMPERATURE = 0.3

AVAILABLE_SECTIONS = {
    "hero": "Main banner with tagline and CTA buttons (ALWAYS include)",
    "features": "Key features/benefits grid",
    "installation": "How to install/get started (for libraries/tools)",
    "usage": "Code examples and usage patterns",
    "api": "API reference highlights",
    "screenshots": "Visual demos (for webapps)",
    "testimonials": "User quotes (if mentioned in README)",
    "pricing": "Pricing tiers (if commercial)",
    "faq": "Frequently asked questions",
    "cta": "Call-to-action before footer",
    "footer": "Site footer with links (ALWAYS include)",
}


def normalize_sections(sections: list[str]) -> tuple[str, ...]:
    """Put ``hero`` first and ``footer`` last, dropping duplicates.

    Entries in between keep the order the model returned them in.
    """
    seen: set[str] = set()
    middle: list[str] = []
    for name in sections:
        if name in seen or name in (FIRST_SECTION, LAST_SECTION):
            continue
        seen.add(name)
        middle.append(name)
    return (FIRST_SECTION, *middle, LAST_SECTION)


class SectionPlanner:
    def __init__(self, generator: TextGenerator):
        self.generator = generator

    async def plan(self, analysis: RepositoryAnalysis, readme_excerpt: Optional[str]) -> SectionPlan:
        """Ask the model for a section list.

        A response of the wrong shape falls back to a minimal plan;
        provider errors propagate.
        """
        try:
            result = await self.generator.generate_text(
                self._build_prompt(analysis, readme_excerpt),
                temperature=PLAN_TEMPERATURE,
            )
        except ProviderError as e:
            raise e.in_stage("plan", project=analysis.name) from e

        parsed = parse_json_object(result.text)
        sections = _section_list(parsed)
        if sections is None:
            logger.warning(
                "Section plan could not be parsed, using fallback sections",
                extra={"project": analysis.name, "raw_preview": result.text[:200]},
            )
            return SectionPlan(
                sections=FALLBACK_SECTIONS,
                reasoning="Using default sections due to parsing error",
                used_fallback=True,
            )

        reasoning = parsed.get("reasoning") if parsed else None
        plan = SectionPlan(
            sections=normalize_sections(sections),
            reasoning=reasoning if isinstance(reasoning, str) else "",
        )
        logger.info(
            "Section plan ready",
            extra={"project": analysis.name, "sections": list(plan.sections)},
        )
        return plan

    @staticmethod
    def _build_prompt(analysis: RepositoryAnalysis, readme_excerpt: Optional[str]) -> str:
        readme = readme_excerpt[:README_EXCERPT_CHARS] if readme_excerpt else "No README available"
        available = "\n".join(f"- {name}: {desc}" for name, desc in AVAILABLE_SECTIONS.items())
        return f"""Analyze this project and determine which website sections are needed.

PROJECT INFO:
- Name: {analysis.name}
- Description: {analysis.description}
- Type: {analysis.project_type}
- Audience: {analysis.audience}
- Key Features: {", ".join(analysis.key_features)}

README PREVIEW (if available):
{readme}

AVAILABLE SECTIONS:
{available}

RULES:
1. Always include "hero" and "footer"
2. Include "installation" for libraries/tools
3. Include "features" if project has clear features
4. Maximum 6 sections total for clean design
5. Order sections logically

Respond with JSON only:
{{
  "sections": ["hero", "features", ...],
  "reasoning": "Brief explanation of why these sections were chosen"
}}"""


def _section_list(parsed: Optional[dict[str, Any]]) -> Optional[list[str]]:
    if parsed is None:
        return None
    sections = parsed.get("sections")
    if not isinstance(sections, list) or not all(isinstance(s, str) and s for s in sections):
        return None
    return sections
