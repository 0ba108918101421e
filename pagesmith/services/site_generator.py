"""End-to-end site generation for one repository.

Stages, in order: repository analysis, design system, section plan,
parallel section generation, assembly, optional refinement, SEO files.
Any stage failure aborts the run; nothing partial is returned.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from ..clients.llm_client import TextGenerator
from ..core.config import settings
from ..exceptions import MalformedResponseError, ProviderError
from ..schemas.generation import (
    ColorPalette,
    DesignSystem,
    GeneratedSite,
    GenerationType,
    RepositoryAnalysis,
    RepositoryInfo,
    SectionContext,
)
from ..schemas.site_config import SiteConfig
from .assembler import SiteOptions, assemble
from .refinement import QualityRefiner, RefinementConfig
from .response_cleaner import parse_json_object
from .section_generator import SectionGenerator
from .section_planner import SectionPlanner

logger = logging.getLogger(__name__)

PROJECT_TYPES = ("library", "tool", "webapp", "docs", "other")
AUDIENCES = ("developers", "designers", "general", "enterprise")
STYLES = ("minimal", "professional", "creative", "technical")

ANALYSIS_TEMPERATURE = 0.3
DESIGN_TEMPERATURE = 0.5
README_ANALYSIS_CHARS = 2000
PREVIEW_DIRECTORY = "preview"
_PALETTE_KEYS = ("primary", "secondary", "accent", "background", "text")


class SiteGenerator:
    def __init__(
        self,
        generator: TextGenerator,
        planner: Optional[SectionPlanner] = None,
        section_generator: Optional[SectionGenerator] = None,
        refiner: Optional[QualityRefiner] = None,
        refine_max_iterations: Optional[int] = None,
        refine_target_score: Optional[int] = None,
    ):
        self.generator = generator
        self.planner = planner or SectionPlanner(generator)
        self.section_generator = section_generator or SectionGenerator(
            generator, settings.section_concurrency
        )
        self.refiner = refiner or QualityRefiner(generator)
        self.refine_max_iterations = (
            settings.refine_max_iterations if refine_max_iterations is None else refine_max_iterations
        )
        self.refine_target_score = refine_target_score or settings.refine_target_score

    async def generate(
        self,
        repo: RepositoryInfo,
        site_config: SiteConfig,
        generation_type: GenerationType = GenerationType.FULL,
    ) -> GeneratedSite:
        log_extra = {"repo": repo.full_name, "generation_type": generation_type.value}

        logger.info("Analyzing repository", extra=log_extra)
        analysis = await self.analyze_repository(repo)

        logger.info("Generating design system", extra=log_extra)
        design = await self.generate_design_system(analysis, site_config)

        context = SectionContext(
            analysis=analysis,
            design=design,
            repo=repo,
            theme_mode=site_config.theme.mode,
            instructions=site_config.prompts.site_instructions,
        )

        plan = await self.planner.plan(analysis, repo.readme)
        sections = await self.section_generator.generate_all(plan, context)
        html = assemble(sections, context, _site_options(site_config))

        refinement = None
        if should_refine(site_config, generation_type):
            logger.info("Refining page", extra=log_extra)
            refinement = await self.refiner.self_refine(
                html,
                RefinementConfig(
                    max_iterations=self.refine_max_iterations,
                    target_score=self.refine_target_score,
                    project_name=analysis.name,
                    project_description=analysis.description,
                    requirements=_requirements(site_config),
                ),
            )
            html = refinement.html

        files = {"index.html": html}
        if generation_type != GenerationType.PREVIEW:
            files.update(seo_files(site_config))

        base = site_config.output_directory.strip("/")
        if generation_type == GenerationType.PREVIEW:
            base = f"{base}/{PREVIEW_DIRECTORY}" if base else PREVIEW_DIRECTORY
        prefix = f"{base}/" if base else ""
        site = GeneratedSite(
            files={f"{prefix}{name}": content for name, content in files.items()},
            plan=plan,
            refinement=refinement,
        )
        logger.info("Site generated", extra={**log_extra, "files": sorted(site.files)})
        return site

    async def analyze_repository(self, repo: RepositoryInfo) -> RepositoryAnalysis:
        """Classify the project.

        Raises:
            MalformedResponseError: if the response is not a JSON object.
        """
        readme = (
            f"\nREADME (first {README_ANALYSIS_CHARS} chars):\n{repo.readme[:README_ANALYSIS_CHARS]}"
            if repo.readme else ""
        )
        prompt = f"""Analyze this GitHub repository and determine its characteristics.

Repository: {repo.name}
Description: {repo.description or "No description"}
Primary Language: {repo.language or "Unknown"}
Topics: {", ".join(repo.topics) or "None"}
{readme}

Respond with JSON only (no markdown, no code blocks):
{{
  "name": "{repo.name}",
  "description": "concise 1-sentence description",
  "projectType": "{"|".join(PROJECT_TYPES)}",
  "primaryLanguage": "the main programming language",
  "audience": "{"|".join(AUDIENCES)}",
  "style": "{"|".join(STYLES)}",
  "keyFeatures": ["feature1", "feature2", "feature3"]
}}"""
        try:
            result = await self.generator.generate_text(prompt, temperature=ANALYSIS_TEMPERATURE)
        except ProviderError as e:
            raise e.in_stage("analyze_repository", project=repo.full_name) from e
        data = parse_json_object(result.text)
        if data is None:
            raise MalformedResponseError(
                "analyze_repository", "expected a JSON object", raw_preview=result.text[:200]
            )

        features = data.get("keyFeatures")
        return RepositoryAnalysis(
            name=_str(data.get("name")) or repo.name,
            description=_str(data.get("description")) or repo.description or "A software project",
            project_type=_choice(data.get("projectType"), PROJECT_TYPES, "other"),
            primary_language=_str(data.get("primaryLanguage")) or repo.language or "Unknown",
            audience=_choice(data.get("audience"), AUDIENCES, "developers"),
            style=_choice(data.get("style"), STYLES, "professional"),
            key_features=tuple(
                f for f in (features if isinstance(features, list) else []) if isinstance(f, str)
            ),
        )

    async def generate_design_system(
        self, analysis: RepositoryAnalysis, site_config: Optional[SiteConfig] = None
    ) -> DesignSystem:
        """Pick colors, fonts and layout.

        Raises:
            MalformedResponseError: if the response is not a JSON object.
        """
        preferences = ""
        if site_config is not None:
            if site_config.design.theme:
                preferences += f"\nPreferred style: {site_config.design.theme}"
            if site_config.design.colors:
                colors = ", ".join(f"{k}={v}" for k, v in site_config.design.colors.items())
                preferences += f"\nPreferred colors: {colors}"
            if site_config.site.layout:
                preferences += f"\nPreferred layout: {site_config.site.layout}"

        prompt = f"""Create a design system for a {analysis.project_type} project.

Project: {analysis.name}
Description: {analysis.description}
Audience: {analysis.audience}
Style: {analysis.style}{preferences}

Generate a modern design system with BOTH light and dark mode color palettes.
Use Tailwind CSS color names (e.g., "blue-600", "gray-900").

Respond with JSON only (no markdown, no code blocks):
{{
  "colors": {{
    "light": {{"primary": "blue-600", "secondary": "indigo-600", "accent": "purple-500", "background": "white", "text": "gray-900"}},
    "dark": {{"primary": "blue-400", "secondary": "indigo-400", "accent": "purple-400", "background": "gray-950", "text": "gray-50"}}
  }},
  "typography": {{"headingFont": "Inter, system-ui, sans-serif", "bodyFont": "Inter, system-ui, sans-serif"}},
  "layout": "hero-centered"
}}"""
        try:
            result = await self.generator.generate_text(prompt, temperature=DESIGN_TEMPERATURE)
        except ProviderError as e:
            raise e.in_stage("generate_design_system", project=analysis.name) from e
        data = parse_json_object(result.text)
        if data is None:
            raise MalformedResponseError(
                "generate_design_system", "expected a JSON object", raw_preview=result.text[:200]
            )

        colors = data.get("colors") if isinstance(data.get("colors"), dict) else {}
        typography = data.get("typography") if isinstance(data.get("typography"), dict) else {}
        defaults = DesignSystem()
        return DesignSystem(
            light=_palette(colors.get("light")),
            dark=_palette(colors.get("dark")),
            heading_font=_str(typography.get("headingFont")) or defaults.heading_font,
            body_font=_str(typography.get("bodyFont")) or defaults.body_font,
            layout=_str(data.get("layout")) or defaults.layout,
        )


def should_refine(site_config: SiteConfig, generation_type: GenerationType) -> bool:
    if generation_type == GenerationType.PREVIEW:
        return False
    return site_config.ai.quality == "high" or generation_type == GenerationType.FORCE


def seo_files(site_config: SiteConfig, today: Optional[str] = None) -> dict[str, str]:
    """``sitemap.xml`` and ``robots.txt`` for a site with a public URL."""
    site_url = (site_config.seo.site_url or "").rstrip("/")
    if not site_url:
        return {}

    files: dict[str, str] = {}
    if site_config.sitemap.enabled:
        lastmod = today or datetime.now(timezone.utc).date().isoformat()
        files["sitemap.xml"] = (
            '<?xml version="1.0" encoding="UTF-8"?>\n'
            '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
            f"  <url>\n    <loc>{site_url}/</loc>\n    <lastmod>{lastmod}</lastmod>\n  </url>\n"
            "</urlset>\n"
        )
    if site_config.robots.enabled:
        robots = "User-agent: *\nAllow: /\n"
        if site_config.sitemap.enabled:
            robots += f"\nSitemap: {site_url}/sitemap.xml\n"
        files["robots.txt"] = robots
    return files


def _site_options(site_config: SiteConfig) -> SiteOptions:
    return SiteOptions(
        favicon_path=site_config.favicon.path if site_config.favicon else None,
        logo_path=site_config.logo.path if site_config.logo else None,
        logo_alt=site_config.logo.alt if site_config.logo else None,
        title=site_config.site.title,
    )


def _requirements(site_config: SiteConfig) -> list[str]:
    requirements = [f"Use the {site_config.theme.mode.value} color theme"]
    if site_config.prompts.site_instructions:
        requirements.append(site_config.prompts.site_instructions.strip())
    return requirements


def _palette(value: Any) -> Optional[ColorPalette]:
    if not isinstance(value, dict):
        return None
    if not all(isinstance(value.get(key), str) and value[key] for key in _PALETTE_KEYS):
        return None
    return ColorPalette(**{key: value[key] for key in _PALETTE_KEYS})


def _choice(value: Any, allowed: tuple[str, ...], default: str) -> str:
    return value if value in allowed else default


def _str(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""
