"""Repository-level configuration document (``.pagesmith.json``).

Every key is optional and defaults independently. Parsing is lenient: an
unknown ``generation.trigger`` value is kept as-is so the trigger rules can
treat it as "no match" instead of failing the webhook. Keys may be written
in camelCase (``ignorePaths``) or snake_case (``ignore_paths``).
"""

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from .generation import ThemeMode

CONFIG_FILE_PATH = ".pagesmith.json"

TRIGGER_MODES = ("auto", "manual", "label")
QUALITY_MODES = ("standard", "high")
THEME_MODES = tuple(m.value for m in ThemeMode)
SITE_INSTRUCTIONS_SOFT_LIMIT = 2000


class _ConfigModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class PushConfig(_ConfigModel):
    enabled: Optional[bool] = None
    branches: Optional[List[str]] = None
    ignore_paths: Optional[List[str]] = None


class GenerationConfig(_ConfigModel):
    trigger: Optional[str] = None
    branches: Optional[List[str]] = None
    labels: Optional[List[str]] = None
    push: Optional[PushConfig] = None


class SiteSection(_ConfigModel):
    layout: Optional[str] = None
    title: Optional[str] = None


class DesignConfig(_ConfigModel):
    theme: Optional[str] = None
    colors: Optional[dict[str, str]] = None


class ThemeConfig(_ConfigModel):
    mode: ThemeMode = ThemeMode.DARK


class AIConfig(_ConfigModel):
    quality: str = "standard"


class AssetRef(_ConfigModel):
    path: str
    alt: Optional[str] = None


class PromptsConfig(_ConfigModel):
    site_instructions: Optional[str] = None


class SeoConfig(_ConfigModel):
    site_url: Optional[str] = None


class ToggleConfig(_ConfigModel):
    enabled: bool = True


class SiteConfig(_ConfigModel):
    """Parsed ``.pagesmith.json`` with defaults applied."""

    enabled: bool = True
    output_directory: str = "docs"
    generation: Optional[GenerationConfig] = None
    site: SiteSection = Field(default_factory=SiteSection)
    design: DesignConfig = Field(default_factory=DesignConfig)
    theme: ThemeConfig = Field(default_factory=ThemeConfig)
    ai: AIConfig = Field(default_factory=AIConfig)
    favicon: Optional[AssetRef] = None
    logo: Optional[AssetRef] = None
    prompts: PromptsConfig = Field(default_factory=PromptsConfig)
    seo: SeoConfig = Field(default_factory=SeoConfig)
    sitemap: ToggleConfig = Field(default_factory=ToggleConfig)
    robots: ToggleConfig = Field(default_factory=ToggleConfig)


class ConfigValidationResult(BaseModel):
    valid: bool
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


_KNOWN_FIELDS = frozenset(
    {"enabled", "outputDirectory", "output_directory", "generation", "site", "design",
     "theme", "ai", "favicon", "logo", "prompts", "seo", "sitemap", "robots"}
)


def validate_site_config(raw: Any) -> ConfigValidationResult:
    """Check a decoded config document without raising.

    Errors describe values that will be ignored or replaced by defaults;
    warnings describe things that still work but are probably mistakes.
    """
    errors: list[str] = []
    warnings: list[str] = []

    if not isinstance(raw, dict):
        return ConfigValidationResult(valid=False, errors=["Configuration must be an object"])

    for key in raw:
        if key not in _KNOWN_FIELDS:
            warnings.append(f"Unknown configuration field: '{key}'")

    generation = raw.get("generation")
    if generation is not None:
        if not isinstance(generation, dict):
            errors.append("'generation' must be an object")
        else:
            trigger = generation.get("trigger")
            if trigger is not None and trigger not in TRIGGER_MODES:
                errors.append(
                    f"'generation.trigger' must be one of: {', '.join(TRIGGER_MODES)}"
                )
            for list_key in ("branches", "labels"):
                value = generation.get(list_key)
                if value is not None and not _is_str_list(value):
                    errors.append(f"'generation.{list_key}' must be a list of strings")
            push = generation.get("push")
            if push is not None and not isinstance(push, dict):
                errors.append("'generation.push' must be an object")

    theme = raw.get("theme")
    if isinstance(theme, dict) and theme.get("mode") not in (None, *THEME_MODES):
        errors.append(f"'theme.mode' must be one of: {', '.join(THEME_MODES)}")

    ai = raw.get("ai")
    if isinstance(ai, dict) and ai.get("quality") not in (None, *QUALITY_MODES):
        errors.append(f"'ai.quality' must be one of: {', '.join(QUALITY_MODES)}")

    prompts = raw.get("prompts")
    if isinstance(prompts, dict):
        instructions = prompts.get("siteInstructions", prompts.get("site_instructions"))
        if instructions is not None:
            if not isinstance(instructions, str):
                errors.append("'prompts.siteInstructions' must be a string")
            elif len(instructions) > SITE_INSTRUCTIONS_SOFT_LIMIT:
                warnings.append(
                    f"'prompts.siteInstructions' is {len(instructions)} characters, "
                    "which may cause token limit issues."
                )

    if not errors:
        try:
            SiteConfig.model_validate(raw)
        except ValidationError as e:
            errors.extend(
                f"'{'.'.join(str(p) for p in err['loc'])}': {err['msg']}" for err in e.errors()
            )

    return ConfigValidationResult(valid=not errors, errors=errors, warnings=warnings)


def parse_site_config(raw: Any) -> SiteConfig:
    """Best-effort parse: invalid sections fall back to their defaults."""
    if not isinstance(raw, dict):
        return SiteConfig()
    try:
        return SiteConfig.model_validate(raw)
    except ValidationError:
        pass

    # Drop the offending top-level sections one at a time.
    cleaned = dict(raw)
    for key in list(cleaned):
        try:
            SiteConfig.model_validate({key: cleaned[key]})
        except ValidationError:
            del cleaned[key]
    return SiteConfig.model_validate(cleaned)


def _is_str_list(value: Any) -> bool:
    return isinstance(value, list) and all(isinstance(v, str) for v in value)
