"""Generates every planned section concurrently.

Each task carries its plan index as ``order``; completion order never
decides placement.
"""

import asyncio
import logging
import re
from typing import Optional

from ..clients.llm_client import TextGenerator
from ..exceptions import ProviderError, SectionGenerationError
from ..schemas.generation import GeneratedSection, SectionContext, SectionPlan
from .assembler import resolve_palette
from .response_cleaner import strip_code_fences

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONCURRENCY = 6
SECTION_MAX_TOKENS = 2000

SECTION_PROMPTS = {
    "hero": """Generate a hero section with:
- Attention-grabbing headline
- Concise tagline/description
- Primary CTA button (e.g., "Get Started", "Install")
- Secondary CTA button (e.g., "View on GitHub", "Learn More")
- Optional decorative elements (gradients, shapes)""",
    "features": """Generate a features section with:
- Section heading
- 3-6 feature cards in a grid
- Each card: icon (use emoji), title, description
- Hover effects on cards""",
    "installation": """Generate an installation section with:
- Section heading
- Package manager commands
- Styled code blocks with copy-friendly formatting
- Brief "next steps" text""",
    "usage": """Generate a usage/examples section with:
- Section heading
- 2-3 code examples with syntax highlighting styling
- Brief explanations for each example""",
    "api": """Generate an API reference section with:
- Section heading
- Key API methods/functions in a table or card format
- Brief descriptions and signatures""",
    "screenshots": """Generate a screenshots/demo section with:
- Section heading
- Placeholder boxes styled as screenshot containers
- Captions for each screenshot area""",
    "testimonials": """Generate a testimonials section with:
- Section heading
- 2-3 testimonial cards
- Each card: quote, author name, role/company""",
    "pricing": """Generate a pricing section with:
- Section heading
- 2-3 pricing tier cards
- Each card: tier name, price, feature list, CTA button""",
    "faq": """Generate a FAQ section with:
- Section heading
- 4-6 Q&A items
- Collapsible styling (visual only, no JS required)""",
    "cta": """Generate a call-to-action section with:
- Compelling headline
- Brief supporting text
- Primary action button
- Background gradient or pattern""",
    "footer": """Generate a footer section with:
- Logo/project name
- Navigation links (Home, Docs, GitHub)
- Copyright notice""",
}

_SECTION_OPEN = re.compile(r"^<section\b([^>]*)>", re.IGNORECASE)
_ID_ATTR = re.compile(r"\bid\s*=", re.IGNORECASE)


def sanitize_section(section_type: str, raw: str) -> str:
    """Strip code fences and make sure the fragment is a ``<section id=...>``.

    Raises:
        SectionGenerationError: if nothing is left after cleaning.
    """
    html = strip_code_fences(raw)
    if not html:
        raise SectionGenerationError(section_type, "empty response")

    opening = _SECTION_OPEN.match(html)
    if opening is None:
        return f'<section id="{section_type}" class="py-16 px-4">\n{html}\n</section>'
    if _ID_ATTR.search(opening.group(1)):
        return html
    return f'<section id="{section_type}"{opening.group(1)}>' + html[opening.end():]


class SectionGenerator:
    def __init__(self, generator: TextGenerator, max_concurrency: int = DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self.generator = generator
        self.max_concurrency = max_concurrency

    async def generate_all(
        self, plan: SectionPlan, context: SectionContext
    ) -> list[GeneratedSection]:
        """Generate all sections and return them sorted by plan position.

        The first failure cancels the sections still running and is re-raised.
        """
        semaphore = asyncio.Semaphore(self.max_concurrency)
        tasks = [
            asyncio.create_task(self._generate_one(section_type, index, context, semaphore))
            for index, section_type in enumerate(plan.sections)
        ]
        try:
            sections = await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

        logger.info(
            "Sections generated",
            extra={"project": context.analysis.name, "count": len(sections)},
        )
        return sorted(sections, key=lambda s: s.order)

    async def _generate_one(
        self,
        section_type: str,
        order: int,
        context: SectionContext,
        semaphore: asyncio.Semaphore,
    ) -> GeneratedSection:
        async with semaphore:
            try:
                result = await self.generator.generate_text(
                    self._build_prompt(section_type, context),
                    max_tokens=SECTION_MAX_TOKENS,
                )
            except ProviderError as e:
                raise e.in_stage(
                    "generate_section", project=context.analysis.name, section_type=section_type
                ) from e
        html = sanitize_section(section_type, result.text)
        logger.debug("Section ready", extra={"section": section_type, "order": order})
        return GeneratedSection(type=section_type, html=html, order=order)

    @staticmethod
    def _build_prompt(section_type: str, context: SectionContext) -> str:
        palette = resolve_palette(context.design, context.theme_mode)
        analysis = context.analysis
        requirements = SECTION_PROMPTS.get(
            section_type,
            f"Generate a {section_type} section that fits the project.",
        )
        instructions = _instructions_block(context.instructions)
        return f"""Generate ONLY the HTML for a {section_type} section.

PROJECT: {analysis.name}
DESCRIPTION: {analysis.description}
PROJECT TYPE: {analysis.project_type}
KEY FEATURES: {", ".join(analysis.key_features)}

DESIGN SYSTEM ({context.theme_mode.value} mode):
- Primary: {palette.primary}
- Secondary: {palette.secondary}
- Accent: {palette.accent}
- Background: {palette.background}
- Text: {palette.text}

SECTION REQUIREMENTS:
{requirements}
{instructions}
TECHNICAL REQUIREMENTS:
1. Use Tailwind CSS classes only
2. Make it responsive (mobile-first)
3. Use semantic HTML (section, article, etc.)
4. Include smooth hover transitions
5. Use the design system colors consistently
6. No external images - use gradients, emojis, or SVG icons

OUTPUT: Return ONLY the <section> element HTML. No explanation, no markdown code blocks.
Start with <section and end with </section>."""


def _instructions_block(instructions: Optional[str]) -> str:
    if not instructions:
        return ""
    return f"\nADDITIONAL INSTRUCTIONS FROM THE REPOSITORY OWNER:\n{instructions.strip()}\n"
