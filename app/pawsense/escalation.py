"""Condition-severity escalation: watch-list rule and SOS alert delivery."""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from pawsense.schemas import AlertEvent, ConditionResult

logger = logging.getLogger(__name__)

SOS_CONDITIONS = frozenset(
    {
        "ringworm",
        "demodicosis",
        "hypersensitivity",
        "fungal",
        "dermatitis",
        "scabies",
        "flea_allergy",
    }
)
SOS_MIN_CONFIDENCE = 60

DEFAULT_ACTIONS = ["Consult a veterinarian for proper diagnosis and treatment."]

IMPORTANT_ACTIONS: dict[str, list[str]] = {
    "ringworm": [
        "Highly contagious – isolate your pet immediately.",
        "Wash hands thoroughly after touching your pet.",
        "Disinfect bedding, toys, and living areas regularly.",
        "Visit a veterinarian for antifungal treatment.",
    ],
    "fungal": [
        "Keep the affected area dry and clean.",
        "Do not apply home remedies or human creams.",
        "A veterinarian should prescribe antifungal medication.",
    ],
    "dermatitis": [
        "Prevent your pet from scratching or licking the skin.",
        "Avoid using steroid creams without vet advice.",
        "Vet visit is important to find the exact cause.",
    ],
    "hypersensitivity": [
        "Check for recent changes in food or environment.",
        "Do not give human allergy medicines.",
        "Consult a vet for allergy testing and safe treatment.",
    ],
    "demodicosis": [
        "Do not shave or apply harsh chemicals to the skin.",
        "Requires vet-prescribed medication and monitoring.",
        "Follow-up visits are important until cleared.",
    ],
    "healthy": [
        "Skin appears healthy based on the image.",
        "Continue regular grooming and hygiene.",
    ],
}


class AlertSender(Protocol):
    async def send_sos_alert(self, event: AlertEvent) -> None: ...


def should_escalate(result: ConditionResult, *, min_confidence: int = SOS_MIN_CONFIDENCE) -> bool:
    return result.label in SOS_CONDITIONS and result.percent >= min_confidence


def important_actions(label: str) -> list[str]:
    return list(IMPORTANT_ACTIONS.get(label.strip().lower(), DEFAULT_ACTIONS))


def confidence_band(percent: int, *, loading: bool = False, min_confidence: int = SOS_MIN_CONFIDENCE) -> str:
    if loading:
        return "Analyzing..."
    return "High Confidence" if percent >= min_confidence else "Low Confidence"


class EscalationPolicy:
    def __init__(self, sender: AlertSender, *, min_confidence: int = SOS_MIN_CONFIDENCE):
        self._sender = sender
        self._min_confidence = min_confidence
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending(self) -> int:
        return len(self._pending)

    def evaluate(self, result: ConditionResult) -> AlertEvent | None:
        """Schedule one SOS alert when the result qualifies. Must run inside the event loop."""
        if not should_escalate(result, min_confidence=self._min_confidence):
            return None

        event = AlertEvent(condition=result.label, confidence=result.percent)
        task = asyncio.get_running_loop().create_task(self._deliver(event))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.info("sos alert scheduled condition=%s confidence=%d", event.condition, event.confidence)
        return event

    async def _deliver(self, event: AlertEvent) -> None:
        try:
            await self._sender.send_sos_alert(event)
        except Exception as exc:
            logger.warning("sos alert failed for %s: %s", event.condition, exc, exc_info=True)

    async def drain(self) -> None:
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
