"""Tests for page assembly."""

from dataclasses import replace

from pagesmith.schemas.generation import DesignSystem, GeneratedSection, ThemeMode
from pagesmith.services.assembler import DEFAULT_PALETTES, SiteOptions, assemble


def _sections():
    # Deliberately out of order: placement must follow ``order``.
    return [
        GeneratedSection("footer", '<section id="footer">F</section>', 2),
        GeneratedSection("hero", '<section id="hero">H</section>', 0),
        GeneratedSection("features", '<section id="features">X</section>', 1),
    ]


class TestAssemble:

    def test_sections_placed_by_order(self, section_context):
        html = assemble(_sections(), section_context)
        assert html.index('id="hero"') < html.index('id="features"') < html.index('id="footer"')

    def test_nav_has_one_link_per_section_in_order(self, section_context):
        html = assemble(_sections(), section_context)
        links = [href for href in ("#hero", "#features", "#footer") if f'href="{href}"' in html]
        assert links == ["#hero", "#features", "#footer"]
        assert html.index('href="#hero"') < html.index('href="#features"') < html.index('href="#footer"')

    def test_document_shell(self, section_context):
        html = assemble(_sections(), section_context)
        assert html.startswith("<!DOCTYPE html>")
        assert '<meta charset="UTF-8">' in html
        assert 'name="viewport"' in html
        assert "https://cdn.tailwindcss.com" in html
        assert "<title>widget - A tiny widget library</title>" in html
        assert 'href="https://github.com/octo/widget"' in html

    def test_dark_mode_uses_dark_palette_and_classes(self, section_context):
        html = assemble(_sections(), section_context)
        assert 'class="bg-slate-950 text-slate-50"' in html
        assert "bg-gray-900/90" in html

    def test_light_mode_uses_light_palette_and_classes(self, section_context):
        context = replace(section_context, theme_mode=ThemeMode.LIGHT)
        html = assemble(_sections(), context)
        assert 'class="bg-white text-slate-900"' in html
        assert "bg-white/90" in html

    def test_missing_palette_falls_back_to_default(self, section_context):
        context = replace(section_context, design=DesignSystem(light=section_context.design.light))
        html = assemble(_sections(), context)
        fallback = DEFAULT_PALETTES[ThemeMode.DARK]
        assert f'class="bg-{fallback.background} text-{fallback.text}"' in html

    def test_optional_favicon_and_logo(self, section_context):
        without = assemble(_sections(), section_context)
        assert 'rel="icon"' not in without

        html = assemble(
            _sections(),
            section_context,
            SiteOptions(favicon_path="favicon.svg", logo_path="logo.png", logo_alt="Widget"),
        )
        assert '<link rel="icon" href="favicon.svg" />' in html
        assert '<img src="logo.png" alt="Widget"' in html

    def test_metadata_is_escaped(self, section_context):
        analysis = replace(section_context.analysis, description='Fast & "safe"')
        html = assemble(_sections(), replace(section_context, analysis=analysis))
        assert 'content="Fast &amp; &quot;safe&quot;"' in html
