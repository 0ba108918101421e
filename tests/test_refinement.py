"""Tests for the evaluate/refine quality loop."""

import json

import pytest

from pagesmith.exceptions import MalformedResponseError, ProviderError
from pagesmith.services.refinement import (
    MIN_REFINED_HTML_LENGTH,
    QualityRefiner,
    RefinementConfig,
)

from .conftest import ScriptedGenerator

PAGE = "<!DOCTYPE html><html><body>" + "x" * MIN_REFINED_HTML_LENGTH + "</body></html>"


def evaluation(score, improvements=("tighten spacing",)) -> str:
    return json.dumps(
        {
            "score": score,
            "feedback": f"scored {score}",
            "strengths": ["clear"],
            "improvements": list(improvements),
        }
    )


def page(tag: str) -> str:
    return f"```html\n<!DOCTYPE html><html><body>{tag}{'y' * MIN_REFINED_HTML_LENGTH}</body></html>\n```"


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

class TestRefinementConfig:

    def test_defaults(self):
        config = RefinementConfig()
        assert config.max_iterations == 3
        assert config.target_score == 8

    @pytest.mark.parametrize("kwargs", [{"max_iterations": -1}, {"target_score": 0}, {"target_score": 11}])
    def test_rejects_out_of_range(self, kwargs):
        with pytest.raises(ValueError):
            RefinementConfig(**kwargs)


# ---------------------------------------------------------------------------
# Evaluation and refinement steps
# ---------------------------------------------------------------------------

class TestEvaluate:

    @pytest.mark.asyncio
    async def test_parses_and_clamps_score(self):
        generator = ScriptedGenerator([evaluation(12.4)])
        result = await QualityRefiner(generator).evaluate_html(PAGE, RefinementConfig())
        assert result.score == 10
        assert result.improvements == ["tighten spacing"]
        assert generator.calls[0]["temperature"] == 0.3

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "reply",
        ["Looks great, 9/10", json.dumps({"feedback": "no score"}), json.dumps({"score": "high"})],
    )
    async def test_unusable_evaluation_is_a_hard_failure(self, reply):
        with pytest.raises(MalformedResponseError):
            await QualityRefiner(ScriptedGenerator([reply])).evaluate_html(PAGE, RefinementConfig())


class TestRefine:

    @pytest.mark.asyncio
    async def test_cleans_output_and_numbers_improvements(self):
        generator = ScriptedGenerator(["Here is the page:\n" + page("new")])
        refiner = QualityRefiner(generator)
        evaluation_result = await QualityRefiner(
            ScriptedGenerator([evaluation(4, ["bigger headline", "more contrast"])])
        ).evaluate_html(PAGE, RefinementConfig())

        refined = await refiner.refine_html(PAGE, evaluation_result, RefinementConfig())

        assert refined.startswith("<!DOCTYPE html>")
        assert "new" in refined
        prompt = generator.calls[0]["prompt"]
        assert "1. bigger headline" in prompt
        assert "2. more contrast" in prompt
        assert generator.calls[0]["temperature"] == 0.7

    @pytest.mark.asyncio
    async def test_short_output_is_rejected(self):
        generator = ScriptedGenerator([evaluation(4), "<!DOCTYPE html><p>tiny</p>"])
        refiner = QualityRefiner(generator)
        result = await refiner.evaluate_html(PAGE, RefinementConfig())
        with pytest.raises(MalformedResponseError):
            await refiner.refine_html(PAGE, result, RefinementConfig())

    @pytest.mark.asyncio
    async def test_output_without_doctype_is_rejected(self):
        generator = ScriptedGenerator([evaluation(4), "I could not do that."])
        refiner = QualityRefiner(generator)
        result = await refiner.evaluate_html(PAGE, RefinementConfig())
        with pytest.raises(MalformedResponseError):
            await refiner.refine_html(PAGE, result, RefinementConfig())


# ---------------------------------------------------------------------------
# Loop
# ---------------------------------------------------------------------------

class TestSelfRefine:

    @pytest.mark.asyncio
    async def test_good_initial_page_is_not_refined(self):
        generator = ScriptedGenerator([evaluation(9)])
        result = await QualityRefiner(generator).self_refine(PAGE, RefinementConfig())

        assert result.html == PAGE
        assert result.iterations == 0
        assert result.improved is True
        assert len(generator.calls) == 1

    @pytest.mark.asyncio
    async def test_stops_once_target_reached(self):
        generator = ScriptedGenerator([evaluation(4), page("v1"), evaluation(8)])
        result = await QualityRefiner(generator).self_refine(PAGE, RefinementConfig())

        assert result.iterations == 1
        assert result.evaluation.score == 8
        assert "v1" in result.html

    @pytest.mark.asyncio
    async def test_regression_does_not_replace_best(self):
        generator = ScriptedGenerator([
            evaluation(4),
            page("v1"), evaluation(6),
            page("v2"), evaluation(3),
            page("v3"), evaluation(6),
        ])
        result = await QualityRefiner(generator).self_refine(PAGE, RefinementConfig(max_iterations=3))

        assert result.iterations == 3
        assert result.evaluation.score == 6
        assert "v1" in result.html  # equal later score does not replace
        assert result.improved is True

    @pytest.mark.asyncio
    async def test_refines_the_latest_candidate(self):
        generator = ScriptedGenerator([
            evaluation(4),
            page("v1"), evaluation(3),
            page("v2"), evaluation(5),
        ])
        result = await QualityRefiner(generator).self_refine(PAGE, RefinementConfig(max_iterations=2))

        second_refine_prompt = generator.calls[3]["prompt"]
        assert "v1" in second_refine_prompt
        assert "CURRENT SCORE: 3/10" in second_refine_prompt
        assert "v2" in result.html
        assert result.improved is False

    @pytest.mark.asyncio
    async def test_zero_iterations_only_evaluates(self):
        generator = ScriptedGenerator([evaluation(2)])
        result = await QualityRefiner(generator).self_refine(PAGE, RefinementConfig(max_iterations=0))

        assert result.iterations == 0
        assert result.html == PAGE
        assert result.evaluation.score == 2
        assert result.improved is False

    @pytest.mark.asyncio
    async def test_improved_is_independent_of_target(self):
        generator = ScriptedGenerator([evaluation(6)])
        result = await QualityRefiner(generator).self_refine(
            PAGE, RefinementConfig(max_iterations=0, target_score=10)
        )
        assert result.improved is True

    @pytest.mark.asyncio
    async def test_malformed_evaluation_mid_loop_propagates(self):
        generator = ScriptedGenerator([evaluation(4), page("v1"), "no json here"])
        with pytest.raises(MalformedResponseError):
            await QualityRefiner(generator).self_refine(PAGE, RefinementConfig())

    @pytest.mark.asyncio
    async def test_provider_error_propagates(self):
        generator = ScriptedGenerator([ProviderError("generate_text", "down")])
        with pytest.raises(ProviderError) as exc_info:
            await QualityRefiner(generator).self_refine(PAGE, RefinementConfig(project_name="widget"))

        assert exc_info.value.operation == "evaluate_html"
        assert exc_info.value.context == {"project": "widget"}

    @pytest.mark.asyncio
    async def test_provider_error_while_refining_names_the_stage(self):
        generator = ScriptedGenerator([evaluation(4), ProviderError("generate_text", "down")])
        with pytest.raises(ProviderError) as exc_info:
            await QualityRefiner(generator).self_refine(PAGE, RefinementConfig())

        assert exc_info.value.operation == "refine_html"
        assert exc_info.value.message == "refine_html failed: down"
