"""Decides whether a repository event should produce a site run.

Pure classification: no network calls, no exceptions. A configuration
document that is missing or half-filled degrades to "no match".
"""

from typing import Optional, Sequence

from ..schemas.generation import (
    ChangeRequest,
    CommandVerb,
    GenerationType,
    ParsedCommand,
    TriggerDecision,
    TriggerType,
)
from ..schemas.site_config import CONFIG_FILE_PATH, TRIGGER_MODES, SiteConfig

LABEL_SKIP = "pagesmith:skip"
LABEL_FORCE = "pagesmith:force"
LABEL_MANUAL = "pagesmith:generate"
LABEL_PREVIEW = "pagesmith:preview"


def _decision(
    should_generate: bool,
    trigger_type: TriggerType,
    reason: str,
    generation_type: GenerationType = GenerationType.FULL,
) -> TriggerDecision:
    return TriggerDecision(
        should_generate=should_generate,
        trigger_type=trigger_type,
        generation_type=generation_type,
        reason=reason,
    )


class TriggerController:
    """Resolves merge, comment and push events into a ``TriggerDecision``."""

    def __init__(self, mention: str = "@pagesmith"):
        self.mention = mention

    # ------------------------------------------------------------------
    # Merged change requests
    # ------------------------------------------------------------------

    def resolve_on_merge(self, change: ChangeRequest, config: SiteConfig) -> TriggerDecision:
        labels = set(change.labels)

        if LABEL_SKIP in labels:
            return _decision(False, TriggerType.SKIP, f"Skip label '{LABEL_SKIP}' present")
        if LABEL_FORCE in labels:
            return _decision(
                True, TriggerType.LABEL, f"Force label '{LABEL_FORCE}' present",
                GenerationType.FORCE,
            )
        if LABEL_MANUAL in labels:
            return _decision(True, TriggerType.LABEL, f"Generate label '{LABEL_MANUAL}' present")
        if LABEL_PREVIEW in labels:
            return _decision(
                True, TriggerType.LABEL, f"Preview label '{LABEL_PREVIEW}' present",
                GenerationType.PREVIEW,
            )

        configured = self._resolve_from_config(change, config)
        if configured is not None:
            return configured

        return _decision(False, TriggerType.MANUAL, "No trigger conditions met")

    def _resolve_from_config(
        self, change: ChangeRequest, config: SiteConfig
    ) -> Optional[TriggerDecision]:
        """Apply the ``generation`` section. ``None`` means the rule did not match."""
        generation = config.generation
        if generation is None:
            return None

        if generation.trigger is not None and generation.trigger not in TRIGGER_MODES:
            return None
        if generation.trigger == "manual":
            return _decision(False, TriggerType.MANUAL, "Manual trigger configured")

        if generation.branches and change.base_branch not in generation.branches:
            return None

        if generation.labels:
            if set(generation.labels) & set(change.labels):
                return _decision(True, TriggerType.AUTO, "Required label present")
            return None

        if generation.trigger == "auto":
            return _decision(True, TriggerType.AUTO, "Config-based auto generation")

        # "label" without configured labels
        return None

    # ------------------------------------------------------------------
    # Comment commands
    # ------------------------------------------------------------------

    def parse_comment(self, body: str) -> Optional[ParsedCommand]:
        """Parse ``<mention> <verb> [--flag|--key=value ...]``.

        The prefix match is case-sensitive; anything else returns None.
        """
        text = body.strip()
        for verb in CommandVerb:
            prefix = f"{self.mention} {verb.value}"
            if text == prefix or text.startswith(prefix + " ") or text.startswith(prefix + "\n"):
                return ParsedCommand(
                    verb=verb,
                    options=_parse_options(text[len(prefix):].split()),
                    command=prefix,
                )
        return None

    def resolve_on_comment(self, body: str, config: SiteConfig) -> TriggerDecision:
        command = self.parse_comment(body)
        if command is None:
            return _decision(False, TriggerType.COMMENT, "No valid command found")

        if command.verb == CommandVerb.GENERATE:
            generation_type = (
                GenerationType.FORCE if "force" in command.options else GenerationType.FULL
            )
            return _decision(
                True, TriggerType.COMMENT, f"Comment command: {command.command}", generation_type
            )
        if command.verb == CommandVerb.PREVIEW:
            return _decision(
                True, TriggerType.COMMENT, f"Preview command: {command.command}",
                GenerationType.PREVIEW,
            )
        return _decision(False, TriggerType.COMMENT, "Non-generation command")

    # ------------------------------------------------------------------
    # Pushes
    # ------------------------------------------------------------------

    def resolve_on_push(
        self,
        branch: str,
        default_branch: str,
        changed_paths: Sequence[str],
        config: SiteConfig,
    ) -> TriggerDecision:
        push = config.generation.push if config.generation else None

        if push is not None and push.enabled is False:
            return _decision(False, TriggerType.AUTO, "Push trigger disabled")

        targets = push.branches if push is not None and push.branches else [default_branch]
        if branch not in targets:
            return _decision(
                False, TriggerType.AUTO,
                f"Branch {branch} not in target branches: {', '.join(targets)}",
            )

        ignore = push.ignore_paths if push is not None else None
        if changed_paths and ignore:
            if all(any(path.startswith(prefix) for prefix in ignore) for path in changed_paths):
                return _decision(
                    False, TriggerType.AUTO,
                    f"All changes in ignored paths: {', '.join(ignore)}",
                )

        return _decision(True, TriggerType.AUTO, "Push trigger activated")

    # ------------------------------------------------------------------
    # Informational replies
    # ------------------------------------------------------------------

    def help_message(self) -> str:
        m = self.mention
        return (
            "## Pagesmith commands\n\n"
            "| Command | Description |\n"
            "|---------|-------------|\n"
            f"| `{m} generate` | Generate or update the site |\n"
            f"| `{m} generate --force` | Regenerate with quality refinement, even when disabled |\n"
            f"| `{m} preview` | Generate a preview under `<outputDirectory>/preview/` |\n"
            f"| `{m} config` | Show the current configuration |\n"
            f"| `{m} help` | Show this help message |\n\n"
            "### Labels\n\n"
            f"- `{LABEL_SKIP}`: never generate for this pull request\n"
            f"- `{LABEL_FORCE}`: force a full regeneration on merge\n"
            f"- `{LABEL_MANUAL}`: generate on merge\n"
            f"- `{LABEL_PREVIEW}`: generate a preview on merge\n\n"
            f"Configure behaviour with a `{CONFIG_FILE_PATH}` file in the repository root."
        )

    def config_message(self, config: SiteConfig) -> str:
        generation = config.generation
        trigger = (generation.trigger if generation else None) or "auto"
        branches = ", ".join(generation.branches) if generation and generation.branches else "all"
        labels = ", ".join(generation.labels) if generation and generation.labels else "none"
        return (
            "## Current Pagesmith configuration\n\n"
            "### Generation\n"
            f"- **Enabled**: {'yes' if config.enabled else 'no'}\n"
            f"- **Trigger**: {trigger}\n"
            f"- **Branches**: {branches}\n"
            f"- **Required labels**: {labels}\n\n"
            "### Site\n"
            f"- **Output directory**: {config.output_directory}\n"
            f"- **Layout**: {config.site.layout or 'hero-focused'}\n"
            f"- **Theme**: {config.design.theme or 'professional'} ({config.theme.mode.value})\n"
            f"- **Quality**: {config.ai.quality}\n\n"
            f"Edit `{CONFIG_FILE_PATH}` to change these settings."
        )


def _parse_options(tokens: Sequence[str]) -> dict[str, str]:
    options: dict[str, str] = {}
    for token in tokens:
        if not token.startswith("--") or len(token) == 2:
            continue
        key, sep, value = token[2:].partition("=")
        if key:
            options[key] = value if sep and value else "true"
    return options
