"""Report download triggered from the last stored classification payload."""

from __future__ import annotations

import logging
from typing import Any, Protocol

from pawsense.errors import ReportUnavailableError
from pawsense.storage import REPORT_PAYLOAD_KEY, SessionStore

logger = logging.getLogger(__name__)

REPORT_FILENAME = "PawSense_Report.pdf"


class ReportRenderer(Protocol):
    async def generate_report(self, payload: dict[str, Any]) -> bytes: ...


class ReportService:
    def __init__(self, store: SessionStore, renderer: ReportRenderer):
        self._store = store
        self._renderer = renderer

    async def generate(self) -> tuple[str, bytes]:
        payload = self._store.get_json(REPORT_PAYLOAD_KEY)
        if not payload:
            raise ReportUnavailableError()
        document = await self._renderer.generate_report(payload)
        logger.info("report generated type=%s bytes=%d", payload.get("type"), len(document))
        return REPORT_FILENAME, document
