import asyncio
import json
import logging
from pathlib import Path

import httpx
import pytest

from pawsense.config import Settings
from pawsense.dispatch import ClassificationDispatcher, parse_result
from pawsense.errors import EndpointUnavailableError, InvalidMediaError
from pawsense.gateway import InferenceGateway
from pawsense.schemas import CapturedMedia, ConditionResult, EmotionResult, Species
from pawsense.sink import HEALTH_FAILED_ADVICE, ResultSink
from pawsense.storage import REPORT_PAYLOAD_KEY, SessionStore


def _settings(tmp_path: Path, **overrides) -> Settings:
    values = dict(
        local_storage_dir=str(tmp_path),
        inference_base_url="http://inference.test",
        alert_base_url="http://alerts.test",
        report_base_url="http://reports.test",
        s3_bucket=None,
    )
    values.update(overrides)
    return Settings(**values)


def _media(kind: str = "image", filename: str = "rex.jpg") -> CapturedMedia:
    content_type = "image/jpeg" if kind == "image" else "audio/webm"
    return CapturedMedia(
        kind=kind,
        data=b"payload-bytes",
        content_type=content_type,
        filename=filename,
        preview_ref="preview://test",
    )


class StaticPredictor:
    def __init__(self, payload=None, error: Exception | None = None):
        self.payload = payload or {}
        self.error = error
        self.calls: list[str] = []

    async def predict(self, endpoint, media):
        self.calls.append(endpoint)
        if self.error is not None:
            raise self.error
        return self.payload


def test_gateway_posts_single_multipart_field(tmp_path: Path):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"emotion": "Happy", "confidence": 87.6})

    gateway = InferenceGateway(_settings(tmp_path), transport=httpx.MockTransport(handler))
    payload = asyncio.run(gateway.predict("cat-emotion", _media()))

    assert payload == {"emotion": "Happy", "confidence": 87.6}
    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "http://inference.test/predict_cat"
    assert request.content.count(b"Content-Disposition: form-data") == 1
    assert b'name="image"' in request.content


def test_gateway_uses_audio_field_for_audio(tmp_path: Path):
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"emotion": "Sad", "confidence": 40})

    gateway = InferenceGateway(_settings(tmp_path), transport=httpx.MockTransport(handler))
    asyncio.run(gateway.predict("audio-emotion", _media("audio", "bark.webm")))

    assert seen[0].url.path == "/predict_audio"
    assert b'name="audio"' in seen[0].content
    assert b'name="image"' not in seen[0].content


def test_gateway_maps_http_failures(tmp_path: Path):
    def server_error(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="warming up")

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def not_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>ngrok</html>")

    def json_list(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=json.dumps([1, 2]).encode("utf-8"))

    for handler in (server_error, refused, not_json, json_list):
        gateway = InferenceGateway(_settings(tmp_path), transport=httpx.MockTransport(handler))
        with pytest.raises(EndpointUnavailableError):
            asyncio.run(gateway.predict("dog-skin", _media()))

    gateway = InferenceGateway(_settings(tmp_path), transport=httpx.MockTransport(server_error))
    with pytest.raises(EndpointUnavailableError) as excinfo:
        asyncio.run(gateway.predict("dog-skin", _media()))
    assert excinfo.value.status_code == 503
    assert excinfo.value.endpoint == "dog-skin"


def test_parse_result_coerces_health_payload():
    result = parse_result("dog-skin", {"confidence": "high"})

    assert isinstance(result, ConditionResult)
    assert result.label == "unknown"
    assert result.confidence == 0.0


def test_parse_result_rejects_unknown_emotion():
    with pytest.raises(EndpointUnavailableError):
        parse_result("dog-emotion", {"emotion": "Confused", "confidence": 50})
    with pytest.raises(EndpointUnavailableError):
        parse_result("dog-emotion", {"confidence": 50})


def test_run_publishes_success_and_report_payload(tmp_path: Path):
    store = SessionStore(_settings(tmp_path))
    sink = ResultSink(store)
    predictor = StaticPredictor({"emotion": "happy", "confidence": 120})
    dispatcher = ClassificationDispatcher(predictor, sink)

    result = asyncio.run(dispatcher.run(_media(), "dog-emotion", pet=None, species=Species.DOG))

    assert isinstance(result, EmotionResult)
    snapshot = sink.snapshot("emotion")
    assert snapshot.label == "Happy"
    assert snapshot.percent == 100
    assert snapshot.loading is False
    assert sink.emotion_counts["Happy"] == 1
    assert store.get_json(REPORT_PAYLOAD_KEY)["emotion"] == "Happy"


def test_run_failure_leaves_sentinel(tmp_path: Path):
    sink = ResultSink(SessionStore(_settings(tmp_path)))
    predictor = StaticPredictor(error=EndpointUnavailableError("dog-skin", status_code=500))
    dispatcher = ClassificationDispatcher(predictor, sink)

    result = asyncio.run(dispatcher.run(_media(), "dog-skin", pet=None, species=Species.DOG))

    assert result is None
    snapshot = sink.snapshot("health")
    assert snapshot.label == "—"
    assert snapshot.percent == 0
    assert snapshot.advice == HEALTH_FAILED_ADVICE
    assert snapshot.error
    assert predictor.calls == ["dog-skin"]


def test_run_unexpected_error_still_leaves_sentinel(tmp_path: Path, caplog):
    sink = ResultSink(SessionStore(_settings(tmp_path)))
    dispatcher = ClassificationDispatcher(StaticPredictor(error=RuntimeError("base url is malformed")), sink)

    with caplog.at_level(logging.ERROR, logger="pawsense.dispatch"):
        result = asyncio.run(dispatcher.run(_media(), "dog-skin", pet=None, species=Species.DOG))

    assert result is None
    snapshot = sink.snapshot("health")
    assert snapshot.label == "—"
    assert snapshot.loading is False
    assert snapshot.error
    assert dispatcher.in_flight("default") == 0
    assert any(record.exc_info for record in caplog.records)


def test_dispatch_rejects_media_endpoint_mismatch(tmp_path: Path):
    dispatcher = ClassificationDispatcher(StaticPredictor(), ResultSink())

    with pytest.raises(InvalidMediaError):
        asyncio.run(dispatcher.dispatch(_media("audio", "bark.webm"), "dog-emotion"))


def test_in_flight_is_tracked_per_call_site():
    gate = asyncio.Event()

    class GatedPredictor:
        async def predict(self, endpoint, media):
            await gate.wait()
            return {"emotion": "Relaxed", "confidence": 55}

    dispatcher = ClassificationDispatcher(GatedPredictor(), ResultSink())

    async def _run():
        task = asyncio.create_task(dispatcher.dispatch(_media(), "dog-emotion", call_site="dashboard"))
        await asyncio.sleep(0)
        during = (dispatcher.in_flight("dashboard"), dispatcher.in_flight("health"))
        gate.set()
        await task
        return during, dispatcher.in_flight("dashboard")

    during, after = asyncio.run(_run())

    assert during == (1, 0)
    assert after == 0


def test_stale_guard_drops_older_response():
    sink = ResultSink(discard_stale=True)
    first = sink.next_token()
    second = sink.next_token()

    assert sink.publish(EmotionResult(label="Sad", confidence=30), second, pet=None, species=Species.DOG, endpoint="dog-emotion")
    assert not sink.publish(EmotionResult(label="Angry", confidence=90), first, pet=None, species=Species.DOG, endpoint="dog-emotion")
    assert sink.snapshot("emotion").label == "Sad"


def test_run_returns_none_for_discarded_result():
    sink = ResultSink(discard_stale=True)
    dispatcher = ClassificationDispatcher(StaticPredictor({"emotion": "Angry", "confidence": 90}), sink)
    older = sink.next_token()
    newer = sink.next_token()
    sink.publish(EmotionResult(label="Sad", confidence=30), newer, pet=None, species=Species.DOG, endpoint="dog-emotion")

    result = asyncio.run(dispatcher.run(_media(), "dog-emotion", pet=None, species=Species.DOG, token=older))

    assert result is None
    assert sink.snapshot("emotion").label == "Sad"
    assert sink.emotion_counts["Angry"] == 0
    assert sink.snapshot("emotion").loading is False
