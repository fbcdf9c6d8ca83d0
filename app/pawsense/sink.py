"""Latest classification outcome per scan purpose, plus the report payload."""

from __future__ import annotations

import itertools
import logging
from collections import Counter
from typing import Any

from pawsense.schemas import (
    EMOTION_LABELS,
    SENTINEL_LABEL,
    ConditionResult,
    EmotionResult,
    PetRecord,
    ResultSnapshot,
    ScanPurpose,
    Species,
)
from pawsense.storage import REPORT_PAYLOAD_KEY, SessionStore
from pawsense.utils import utc_now

logger = logging.getLogger(__name__)

HEALTH_PENDING_LABEL = "Analyzing..."
HEALTH_PENDING_ADVICE = "Analyzing image, please wait..."
HEALTH_IDLE_ADVICE = "Upload an image to receive AI-based health guidance."
HEALTH_FAILED_ADVICE = "Could not get a valid response from the server."
HEALTH_FAILED_MESSAGE = "Failed to analyze image. Please try again."
EMOTION_FAILED_MESSAGE = "Failed to analyze capture. Please try again."


class ResultSink:
    def __init__(self, store: SessionStore | None = None, *, discard_stale: bool = False):
        self._store = store
        self._discard_stale = discard_stale
        self._tokens = itertools.count(1)
        self._published: dict[str, int] = {"emotion": 0, "health": 0}
        self._slots: dict[str, ResultSnapshot] = {
            "emotion": ResultSnapshot(purpose="emotion"),
            "health": ResultSnapshot(purpose="health", advice=HEALTH_IDLE_ADVICE),
        }
        self._latest: str | None = None
        self._emotion_counts: Counter[str] = Counter({label: 0 for label in EMOTION_LABELS})

    def next_token(self) -> int:
        return next(self._tokens)

    def snapshot(self, purpose: ScanPurpose) -> ResultSnapshot:
        return self._slots[purpose]

    @property
    def latest(self) -> ResultSnapshot | None:
        return self._slots[self._latest] if self._latest else None

    @property
    def emotion_counts(self) -> dict[str, int]:
        return {label: self._emotion_counts[label] for label in EMOTION_LABELS}

    def _is_stale(self, purpose: str, token: int) -> bool:
        if not self._discard_stale:
            return False
        if token < self._published[purpose]:
            logger.info("dropping stale %s result token=%d newest=%d", purpose, token, self._published[purpose])
            return True
        return False

    def begin(
        self,
        purpose: ScanPurpose,
        token: int,
        *,
        pet: PetRecord | None,
        species: Species,
        endpoint: str,
    ) -> None:
        if self._is_stale(purpose, token):
            return
        current = self._slots[purpose]
        update: dict[str, Any] = {
            "loading": True,
            "error": None,
            "pet_id": pet.id if pet else None,
            "species": species,
            "endpoint": endpoint,
            "token": token,
            "updated_at": utc_now(),
        }
        if purpose == "health":
            update.update(label=HEALTH_PENDING_LABEL, confidence=0.0, percent=0, advice=HEALTH_PENDING_ADVICE)
        self._slots[purpose] = current.model_copy(update=update)

    def publish(
        self,
        result: EmotionResult | ConditionResult,
        token: int,
        *,
        pet: PetRecord | None,
        species: Species,
        endpoint: str,
    ) -> bool:
        purpose = result.purpose
        if self._is_stale(purpose, token):
            return False

        snapshot = ResultSnapshot(
            purpose=purpose,
            label=result.label,
            confidence=result.confidence,
            percent=result.percent,
            advice=result.advice if isinstance(result, ConditionResult) else None,
            pet_id=pet.id if pet else None,
            species=species,
            endpoint=endpoint,
            token=token,
        )
        self._write(purpose, token, snapshot)
        if isinstance(result, EmotionResult):
            self._emotion_counts[result.label] += 1

        if self._store is not None:
            self._store.put_json(REPORT_PAYLOAD_KEY, self._report_payload(result, pet, species))
        return True

    def fail(
        self,
        purpose: ScanPurpose,
        token: int,
        *,
        pet: PetRecord | None,
        species: Species,
        endpoint: str,
        message: str | None = None,
    ) -> bool:
        if self._is_stale(purpose, token):
            return False

        snapshot = ResultSnapshot(
            purpose=purpose,
            label=SENTINEL_LABEL,
            advice=HEALTH_FAILED_ADVICE if purpose == "health" else None,
            error=message or (HEALTH_FAILED_MESSAGE if purpose == "health" else EMOTION_FAILED_MESSAGE),
            pet_id=pet.id if pet else None,
            species=species,
            endpoint=endpoint,
            token=token,
        )
        self._write(purpose, token, snapshot)
        return True

    def _write(self, purpose: str, token: int, snapshot: ResultSnapshot) -> None:
        self._slots[purpose] = snapshot
        self._published[purpose] = max(self._published[purpose], token)
        self._latest = purpose

    @staticmethod
    def _report_payload(
        result: EmotionResult | ConditionResult,
        pet: PetRecord | None,
        species: Species,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "type": result.purpose,
            "species": species.value,
            "pet": pet.model_dump(mode="json") if pet else None,
            "confidence": result.percent,
            "generated_at": utc_now().isoformat(),
        }
        if isinstance(result, ConditionResult):
            payload["disease"] = result.label
            payload["advice"] = result.advice
        else:
            payload["emotion"] = result.label
        return payload

    def as_dict(self) -> dict[str, Any]:
        return {
            "emotion": self._slots["emotion"].model_dump(mode="json"),
            "health": self._slots["health"].model_dump(mode="json"),
            "latest": self._latest,
            "emotion_counts": self.emotion_counts,
        }
