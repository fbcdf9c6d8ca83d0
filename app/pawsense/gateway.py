"""Gateway for calling the inference, SOS and report endpoints."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from pawsense.config import Settings
from pawsense.endpoints import endpoint_path
from pawsense.errors import AlertDeliveryError, EndpointUnavailableError
from pawsense.schemas import AlertEvent, CapturedMedia

logger = logging.getLogger(__name__)

SOS_PATH = "/sos-alert"
REPORT_PATH = "/generate_report"


class InferenceGateway:
    def __init__(self, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None):
        self._settings = settings
        self._transport = transport

    def _client(self, timeout_sec: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=timeout_sec or self._settings.request_timeout_sec,
            follow_redirects=True,
            transport=self._transport,
        )

    @staticmethod
    def _url(base_url: str, path: str) -> str:
        return f"{base_url.rstrip('/')}{path}"

    async def predict(self, endpoint: str, media: CapturedMedia) -> dict[str, Any]:
        url = self._url(self._settings.inference_base_url, endpoint_path(endpoint))
        files = {media.field_name: (media.filename, media.data, media.content_type)}
        try:
            async with self._client() as client:
                response = await client.post(url, files=files)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise EndpointUnavailableError(
                endpoint, "non-success response", status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise EndpointUnavailableError(endpoint, f"{type(exc).__name__}: {exc}") from exc
        except ValueError as exc:
            raise EndpointUnavailableError(endpoint, "response is not JSON") from exc

        if not isinstance(payload, dict):
            raise EndpointUnavailableError(endpoint, "response is not a JSON object")
        return payload

    async def send_sos_alert(self, event: AlertEvent) -> None:
        url = self._url(self._settings.alert_base_url, SOS_PATH)
        try:
            async with self._client(self._settings.alert_timeout_sec) as client:
                response = await client.post(url, json=event.to_payload())
        except httpx.HTTPError as exc:
            raise AlertDeliveryError(f"{type(exc).__name__}: {exc}") from exc

        # The alert contract ignores the response body and status.
        if not response.is_success:
            logger.warning("sos alert answered HTTP %s for %s", response.status_code, event.condition)

    async def generate_report(self, payload: dict[str, Any]) -> bytes:
        url = self._url(self._settings.report_base_url, REPORT_PATH)
        try:
            async with self._client() as client:
                response = await client.post(url, json=payload)
                response.raise_for_status()
                return response.content
        except httpx.HTTPStatusError as exc:
            raise EndpointUnavailableError(
                "generate-report", "non-success response", status_code=exc.response.status_code
            ) from exc
        except httpx.HTTPError as exc:
            raise EndpointUnavailableError("generate-report", f"{type(exc).__name__}: {exc}") from exc

    async def probe(self) -> dict[str, Any]:
        base_url = self._settings.inference_base_url
        status: dict[str, Any] = {"url": base_url, "reachable": None, "status_code": None, "error": None}
        try:
            async with self._client(4.0) as client:
                response = await client.get(self._url(base_url, "/health"))
            status["reachable"] = response.is_success
            status["status_code"] = response.status_code
            if not response.is_success:
                status["error"] = response.text[:180]
        except httpx.HTTPError as exc:
            status["reachable"] = False
            status["error"] = str(exc)
        return status
