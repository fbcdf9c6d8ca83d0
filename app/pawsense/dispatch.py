"""Classification dispatch: submit a capture, parse the answer, publish it."""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Protocol

from pydantic import ValidationError

from pawsense.endpoints import ENDPOINT_MEDIA, HEALTH_ENDPOINTS, endpoint_path
from pawsense.errors import EndpointUnavailableError, InvalidMediaError
from pawsense.schemas import CapturedMedia, ConditionResult, EmotionResult, PetRecord, Species
from pawsense.sink import ResultSink
from pawsense.utils import elapsed_ms, now_ms

logger = logging.getLogger(__name__)


class Predictor(Protocol):
    async def predict(self, endpoint: str, media: CapturedMedia) -> dict[str, Any]: ...


def parse_result(endpoint: str, payload: dict[str, Any]) -> EmotionResult | ConditionResult:
    try:
        if endpoint in HEALTH_ENDPOINTS:
            return ConditionResult.model_validate(
                {
                    "label": payload.get("disease"),
                    "confidence": payload.get("confidence"),
                    "advice": payload.get("advice"),
                }
            )
        return EmotionResult.model_validate(
            {"label": payload.get("emotion"), "confidence": payload.get("confidence")}
        )
    except ValidationError as exc:
        raise EndpointUnavailableError(endpoint, "unrecognised classification payload") from exc


def _check_route(media: CapturedMedia, endpoint: str) -> None:
    endpoint_path(endpoint)
    if ENDPOINT_MEDIA[endpoint] != media.kind:
        raise InvalidMediaError(f"{endpoint} does not accept {media.kind} captures")


class ClassificationDispatcher:
    """Single-flight per call site is advisory: `in_flight` feeds the UI, nothing is locked."""

    def __init__(self, predictor: Predictor, sink: ResultSink):
        self._predictor = predictor
        self._sink = sink
        self._in_flight: Counter[str] = Counter()

    @property
    def sink(self) -> ResultSink:
        return self._sink

    def in_flight(self, call_site: str) -> int:
        return self._in_flight[call_site]

    async def dispatch(
        self,
        media: CapturedMedia,
        endpoint: str,
        *,
        call_site: str = "default",
    ) -> EmotionResult | ConditionResult:
        _check_route(media, endpoint)
        self._in_flight[call_site] += 1
        started = now_ms()
        try:
            logger.info("dispatch started endpoint=%s call_site=%s bytes=%d", endpoint, call_site, len(media.data))
            payload = await self._predictor.predict(endpoint, media)
            result = parse_result(endpoint, payload)
        finally:
            self._in_flight[call_site] -= 1

        logger.info(
            "dispatch finished endpoint=%s label=%s confidence=%d latency_ms=%d",
            endpoint,
            result.label,
            result.percent,
            elapsed_ms(started),
        )
        return result

    async def run(
        self,
        media: CapturedMedia,
        endpoint: str,
        *,
        pet: PetRecord | None,
        species: Species,
        call_site: str = "default",
        token: int | None = None,
    ) -> EmotionResult | ConditionResult | None:
        """Dispatch and publish to the sink.

        Returns None when nothing was published: the call failed and left the sentinel,
        or a newer result already owns the slot.
        """
        _check_route(media, endpoint)
        purpose = "health" if endpoint in HEALTH_ENDPOINTS else "emotion"
        if token is None:
            token = self._sink.next_token()
        self._sink.begin(purpose, token, pet=pet, species=species, endpoint=endpoint)

        try:
            result = await self.dispatch(media, endpoint, call_site=call_site)
        except EndpointUnavailableError as exc:
            logger.warning("dispatch failed: %s", exc)
            self._sink.fail(purpose, token, pet=pet, species=species, endpoint=endpoint)
            return None
        except Exception:
            logger.exception("dispatch to %s raised unexpectedly", endpoint)
            self._sink.fail(purpose, token, pet=pet, species=species, endpoint=endpoint)
            return None

        if not self._sink.publish(result, token, pet=pet, species=species, endpoint=endpoint):
            return None
        return result
