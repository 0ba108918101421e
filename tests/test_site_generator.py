"""Tests for the end-to-end generation pipeline."""

import json

import pytest

from pagesmith.exceptions import MalformedResponseError, ProviderError
from pagesmith.schemas.generation import GenerationType, ThemeMode
from pagesmith.schemas.site_config import SiteConfig
from pagesmith.services.site_generator import SiteGenerator, seo_files, should_refine

from .conftest import ScriptedGenerator

ANALYSIS = json.dumps(
    {
        "name": "widget",
        "description": "Widgets for everyone",
        "projectType": "library",
        "primaryLanguage": "Python",
        "audience": "developers",
        "style": "minimal",
        "keyFeatures": ["fast", "small"],
    }
)

DESIGN = json.dumps(
    {
        "colors": {
            "light": {"primary": "rose-600", "secondary": "pink-600", "accent": "orange-500",
                      "background": "white", "text": "zinc-900"},
            "dark": {"primary": "rose-400", "secondary": "pink-400", "accent": "orange-400",
                     "background": "zinc-950", "text": "zinc-50"},
        },
        "typography": {"headingFont": "Poppins, sans-serif", "bodyFont": "Inter, sans-serif"},
        "layout": "split",
    }
)

PLAN = json.dumps({"sections": ["features", "installation"], "reasoning": "a library"})


def _evaluation(score: int) -> str:
    return json.dumps({"score": score, "feedback": "ok", "strengths": [], "improvements": ["more color"]})


def pipeline_route(overrides=None):
    """Reply by prompt shape; ``overrides`` replaces a stage's reply."""
    replies = {
        "analysis": ANALYSIS,
        "design": DESIGN,
        "plan": PLAN,
        "evaluate": _evaluation(9),
        "refine": "<!DOCTYPE html><html><body>" + "r" * 200 + "</body></html>",
        **(overrides or {}),
    }

    def route(prompt: str):
        if prompt.startswith("Analyze this GitHub repository"):
            return replies["analysis"]
        if prompt.startswith("Create a design system"):
            return replies["design"]
        if prompt.startswith("Analyze this project"):
            return replies["plan"]
        if prompt.startswith("You are an expert web design reviewer"):
            return replies["evaluate"]
        if prompt.startswith("You are an expert web designer"):
            return replies["refine"]
        section = prompt.split("HTML for a ", 1)[1].split(" ", 1)[0]
        return f"<h2>{section} content</h2>"

    return route


def _config(**raw) -> SiteConfig:
    return SiteConfig.model_validate(raw)


class TestGenerate:

    @pytest.mark.asyncio
    async def test_full_run_writes_index_into_output_directory(self, repo_info):
        generator = ScriptedGenerator(route=pipeline_route())
        site = await SiteGenerator(generator).generate(repo_info, SiteConfig())

        assert list(site.files) == ["docs/index.html"]
        html = site.files["docs/index.html"]
        assert html.startswith("<!DOCTYPE html>")
        for section in ("hero", "features", "installation", "footer"):
            assert f'id="{section}"' in html
        assert "bg-zinc-950" in html
        assert site.plan.sections == ("hero", "features", "installation", "footer")
        assert site.refinement is None

    @pytest.mark.asyncio
    async def test_preview_goes_to_preview_directory_without_seo(self, repo_info):
        config = _config(seo={"siteUrl": "https://octo.github.io/widget"})
        generator = ScriptedGenerator(route=pipeline_route())

        site = await SiteGenerator(generator).generate(repo_info, config, GenerationType.PREVIEW)

        assert list(site.files) == ["docs/preview/index.html"]

    @pytest.mark.asyncio
    async def test_seo_files_with_site_url(self, repo_info):
        config = _config(outputDirectory="site/", seo={"siteUrl": "https://octo.github.io/widget/"})
        generator = ScriptedGenerator(route=pipeline_route())

        site = await SiteGenerator(generator).generate(repo_info, config)

        assert sorted(site.files) == ["site/index.html", "site/robots.txt", "site/sitemap.xml"]

    @pytest.mark.asyncio
    async def test_empty_output_directory_writes_to_root(self, repo_info):
        generator = ScriptedGenerator(route=pipeline_route())
        site = await SiteGenerator(generator).generate(repo_info, _config(outputDirectory=""))
        assert list(site.files) == ["index.html"]

    @pytest.mark.asyncio
    async def test_force_run_is_refined(self, repo_info):
        generator = ScriptedGenerator(route=pipeline_route({"evaluate": _evaluation(9)}))
        site = await SiteGenerator(generator).generate(repo_info, SiteConfig(), GenerationType.FORCE)

        assert site.refinement is not None
        assert site.refinement.iterations == 0
        assert site.refinement.evaluation.score == 9

    @pytest.mark.asyncio
    async def test_refined_page_replaces_assembled_page(self, repo_info):
        scores = iter([_evaluation(3), _evaluation(9)])
        generator = ScriptedGenerator(
            route=pipeline_route({"evaluate": lambda prompt: next(scores)})
        )
        site = await SiteGenerator(generator).generate(
            repo_info, _config(ai={"quality": "high"})
        )

        assert site.refinement.iterations == 1
        assert site.files["docs/index.html"].startswith("<!DOCTYPE html><html><body>rrr")

    @pytest.mark.asyncio
    async def test_site_instructions_reach_section_prompts(self, repo_info):
        generator = ScriptedGenerator(route=pipeline_route())
        await SiteGenerator(generator).generate(
            repo_info, _config(prompts={"siteInstructions": "Say hello in French."})
        )
        section_prompts = [c["prompt"] for c in generator.calls if "HTML for a " in c["prompt"]]
        assert section_prompts
        assert all("Say hello in French." in p for p in section_prompts)

    @pytest.mark.asyncio
    async def test_stage_failure_aborts_run(self, repo_info):
        generator = ScriptedGenerator(
            route=pipeline_route({"design": ProviderError("generate_text", "quota exceeded")})
        )
        with pytest.raises(ProviderError) as exc_info:
            await SiteGenerator(generator).generate(repo_info, SiteConfig())

        assert exc_info.value.operation == "generate_design_system"
        assert "project 'widget'" in exc_info.value.message


class TestAnalyzeRepository:

    @pytest.mark.asyncio
    async def test_parses_analysis(self, repo_info):
        generator = ScriptedGenerator([f"```json\n{ANALYSIS}\n```"])
        analysis = await SiteGenerator(generator).analyze_repository(repo_info)

        assert analysis.description == "Widgets for everyone"
        assert analysis.project_type == "library"
        assert analysis.key_features == ("fast", "small")
        assert "Install with pip." in generator.calls[0]["prompt"]
        assert generator.calls[0]["temperature"] == 0.3

    @pytest.mark.asyncio
    async def test_unknown_enums_use_defaults(self, repo_info):
        generator = ScriptedGenerator([json.dumps({"projectType": "game", "audience": "kids", "style": "loud"})])
        analysis = await SiteGenerator(generator).analyze_repository(repo_info)

        assert analysis.name == "widget"
        assert analysis.project_type == "other"
        assert analysis.audience == "developers"
        assert analysis.style == "professional"
        assert analysis.description == "A tiny widget library"

    @pytest.mark.asyncio
    async def test_non_json_is_malformed(self, repo_info):
        with pytest.raises(MalformedResponseError):
            await SiteGenerator(ScriptedGenerator(["It is a library."])).analyze_repository(repo_info)


class TestDesignSystem:

    @pytest.mark.asyncio
    async def test_parses_both_palettes(self, analysis):
        generator = ScriptedGenerator([DESIGN])
        design = await SiteGenerator(generator).generate_design_system(analysis)

        assert design.palette(ThemeMode.LIGHT).primary == "rose-600"
        assert design.palette(ThemeMode.DARK).background == "zinc-950"
        assert design.heading_font == "Poppins, sans-serif"
        assert design.layout == "split"
        assert generator.calls[0]["temperature"] == 0.5

    @pytest.mark.asyncio
    async def test_incomplete_palette_is_dropped(self, analysis):
        reply = json.dumps({"colors": {"dark": {"primary": "red-500"}}})
        design = await SiteGenerator(ScriptedGenerator([reply])).generate_design_system(analysis)

        assert design.palette(ThemeMode.DARK) is None
        assert design.palette(ThemeMode.LIGHT) is None
        assert design.layout == "hero-centered"

    @pytest.mark.asyncio
    async def test_preferences_are_passed_on(self, analysis):
        generator = ScriptedGenerator([DESIGN])
        config = _config(design={"theme": "retro", "colors": {"primary": "lime-500"}}, site={"layout": "split"})
        await SiteGenerator(generator).generate_design_system(analysis, config)

        prompt = generator.calls[0]["prompt"]
        assert "Preferred style: retro" in prompt
        assert "primary=lime-500" in prompt
        assert "Preferred layout: split" in prompt

    @pytest.mark.asyncio
    async def test_non_json_is_malformed(self, analysis):
        with pytest.raises(MalformedResponseError):
            await SiteGenerator(ScriptedGenerator(["blue and white"])).generate_design_system(analysis)


class TestShouldRefine:

    @pytest.mark.parametrize(
        "quality, generation_type, expected",
        [
            ("standard", GenerationType.FULL, False),
            ("standard", GenerationType.FORCE, True),
            ("high", GenerationType.FULL, True),
            ("high", GenerationType.PREVIEW, False),
        ],
    )
    def test_matrix(self, quality, generation_type, expected):
        assert should_refine(_config(ai={"quality": quality}), generation_type) is expected


class TestSeoFiles:

    def test_no_site_url_no_files(self):
        assert seo_files(SiteConfig()) == {}

    def test_sitemap_and_robots(self):
        files = seo_files(_config(seo={"siteUrl": "https://x.dev/"}), today="2024-05-01")

        assert "<loc>https://x.dev/</loc>" in files["sitemap.xml"]
        assert "<lastmod>2024-05-01</lastmod>" in files["sitemap.xml"]
        assert "Sitemap: https://x.dev/sitemap.xml" in files["robots.txt"]

    def test_sitemap_disabled(self):
        files = seo_files(_config(seo={"siteUrl": "https://x.dev"}, sitemap={"enabled": False}))

        assert "sitemap.xml" not in files
        assert "Sitemap:" not in files["robots.txt"]

    def test_robots_disabled(self):
        files = seo_files(_config(seo={"siteUrl": "https://x.dev"}, robots={"enabled": False}))
        assert list(files) == ["sitemap.xml"]
