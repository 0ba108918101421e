"""Webhook response schemas."""

from typing import Optional

from pydantic import BaseModel

from .generation import TriggerDecision


class DecisionSummary(BaseModel):
    """Serializable view of a ``TriggerDecision``."""
    should_generate: bool
    trigger_type: str
    generation_type: str
    reason: str

    @classmethod
    def from_decision(cls, decision: TriggerDecision) -> "DecisionSummary":
        return cls(
            should_generate=decision.should_generate,
            trigger_type=decision.trigger_type.value,
            generation_type=decision.generation_type.value,
            reason=decision.reason,
        )


class WebhookResponse(BaseModel):
    """Response after receiving a webhook.

    ``status`` is one of ``ignored``, ``skipped``, ``replied`` or ``scheduled``.
    """
    status: str
    decision: Optional[DecisionSummary] = None
    message: str
