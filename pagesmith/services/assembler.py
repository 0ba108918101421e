"""Merges generated section fragments into one HTML document."""

import logging
from dataclasses import dataclass
from html import escape
from typing import Iterable, Optional

from ..schemas.generation import (
    ColorPalette,
    DesignSystem,
    GeneratedSection,
    SectionContext,
    ThemeMode,
)

logger = logging.getLogger(__name__)

TAILWIND_CDN = "https://cdn.tailwindcss.com"

DEFAULT_PALETTES = {
    ThemeMode.LIGHT: ColorPalette(
        primary="blue-600",
        secondary="indigo-600",
        accent="purple-500",
        background="white",
        text="gray-900",
    ),
    ThemeMode.DARK: ColorPalette(
        primary="blue-400",
        secondary="indigo-400",
        accent="purple-400",
        background="gray-950",
        text="gray-50",
    ),
}

_NAV_CLASSES = {
    ThemeMode.LIGHT: "bg-white/90 border-gray-200",
    ThemeMode.DARK: "bg-gray-900/90 border-gray-800",
}
_BUTTON_TEXT_CLASSES = {
    ThemeMode.LIGHT: "text-white",
    ThemeMode.DARK: "text-gray-900",
}


@dataclass(frozen=True)
class SiteOptions:
    """Per-repository shell options taken from ``.pagesmith.json``."""

    favicon_path: Optional[str] = None
    logo_path: Optional[str] = None
    logo_alt: Optional[str] = None
    title: Optional[str] = None


def resolve_palette(design: DesignSystem, mode: ThemeMode) -> ColorPalette:
    palette = design.palette(mode)
    if palette is None:
        logger.warning("Missing color palette, using default", extra={"theme_mode": mode.value})
        return DEFAULT_PALETTES[mode]
    return palette


def assemble(
    sections: Iterable[GeneratedSection],
    context: SectionContext,
    site_options: Optional[SiteOptions] = None,
) -> str:
    """Build the page shell around ``sections``, placed by their ``order``."""
    options = site_options or SiteOptions()
    ordered = sorted(sections, key=lambda s: s.order)
    mode = context.theme_mode
    palette = resolve_palette(context.design, mode)
    analysis = context.analysis

    name = escape(options.title or analysis.name)
    description = escape(analysis.description)

    nav_links = "\n          ".join(
        f'<a href="#{escape(s.type)}" class="text-{palette.text} hover:text-{palette.primary} '
        f'transition-colors capitalize">{escape(s.type)}</a>'
        for s in ordered
    )
    body = "\n\n  ".join(s.html for s in ordered)

    favicon = (
        f'<link rel="icon" href="{escape(options.favicon_path)}" />'
        if options.favicon_path else ""
    )
    brand = name
    if options.logo_path:
        alt = escape(options.logo_alt or analysis.name)
        brand = f'<img src="{escape(options.logo_path)}" alt="{alt}" class="h-8 w-auto" />'

    return f"""<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>{name} - {description}</title>
  <meta name="description" content="{description}">
  <script src="{TAILWIND_CDN}"></script>
  {favicon}
  <script>
    tailwind.config = {{
      theme: {{
        extend: {{
          colors: {{
            primary: '{palette.primary}',
            secondary: '{palette.secondary}',
            accent: '{palette.accent}',
          }},
          fontFamily: {{
            heading: ['{context.design.heading_font}'],
            body: ['{context.design.body_font}'],
          }}
        }}
      }}
    }}
  </script>
  <style>
    html {{ scroll-behavior: smooth; }}
  </style>
</head>
<body class="bg-{palette.background} text-{palette.text}">
  <nav class="fixed top-0 left-0 right-0 {_NAV_CLASSES[mode]} backdrop-blur-sm border-b z-50">
    <div class="max-w-7xl mx-auto px-4 sm:px-6 lg:px-8">
      <div class="flex justify-between items-center h-16">
        <a href="#" class="text-xl font-bold text-{palette.primary}">{brand}</a>
        <div class="hidden md:flex space-x-8">
          {nav_links}
        </div>
        <a href="{escape(context.repo.html_url)}" target="_blank" rel="noopener" class="inline-flex items-center px-4 py-2 bg-{palette.primary} {_BUTTON_TEXT_CLASSES[mode]} rounded-lg hover:opacity-90 transition-opacity">GitHub</a>
      </div>
    </div>
  </nav>

  <main class="pt-16">
  {body}
  </main>
</body>
</html>
"""
