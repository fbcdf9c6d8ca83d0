"""Session and artifact persistence for PawSense.

The local filesystem tree is always written so the service runs without external
dependencies; S3 is mirrored in when a bucket is configured.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

from pawsense.config import Settings
from pawsense.utils import utc_now

logger = logging.getLogger(__name__)

REPORT_PAYLOAD_KEY = "pawsense_report"

_SAFE_KEY = re.compile(r"[^A-Za-z0-9._-]+")


def _safe_name(value: str) -> str:
    cleaned = _SAFE_KEY.sub("_", value).strip("._")
    return cleaned or "unnamed"


class SessionStore:
    def __init__(self, settings: Settings):
        self._settings = settings
        self._root = Path(settings.local_storage_dir)
        (self._root / "artifacts").mkdir(parents=True, exist_ok=True)
        (self._root / "session").mkdir(parents=True, exist_ok=True)
        (self._root / "logs").mkdir(parents=True, exist_ok=True)
        self._events_file = self._root / "logs" / "events.jsonl"

        self._s3 = None
        if settings.s3_bucket:
            try:
                import boto3  # type: ignore

                self._s3 = boto3.client("s3", region_name=settings.s3_region)
            except Exception as exc:
                logger.warning("s3 client unavailable, using local store only: %s", exc)
                self._s3 = None

    @property
    def root(self) -> Path:
        return self._root

    def _s3_key(self, namespace: str, name: str) -> str:
        prefix = self._settings.s3_prefix.strip("/")
        return f"{prefix}/{namespace}/{name}" if prefix else f"{namespace}/{name}"

    def _put_s3(self, key: str, body: bytes, content_type: str) -> str | None:
        if self._s3 is None or not self._settings.s3_bucket:
            return None
        self._s3.put_object(
            Bucket=self._settings.s3_bucket,
            Key=key,
            Body=body,
            ContentType=content_type,
        )
        return f"s3://{self._settings.s3_bucket}/{key}"

    async def store_blob(
        self,
        namespace: str,
        name: str,
        data: bytes,
        *,
        content_type: str,
    ) -> str:
        namespace = _safe_name(namespace)
        name = _safe_name(name)
        local_path = self._root / "artifacts" / namespace / name
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_bytes(data)
        return self._put_s3(self._s3_key(namespace, name), data, content_type) or str(local_path)

    def put_json(self, key: str, payload: dict[str, Any]) -> str:
        raw = json.dumps(payload, ensure_ascii=True, indent=2, default=str)
        local_path = self._root / "session" / f"{_safe_name(key)}.json"
        local_path.write_text(raw, encoding="utf-8")
        self._put_s3(self._s3_key("session", f"{_safe_name(key)}.json"), raw.encode("utf-8"), "application/json")
        return str(local_path)

    def get_json(self, key: str) -> dict[str, Any] | None:
        local_path = self._root / "session" / f"{_safe_name(key)}.json"
        if not local_path.exists():
            return None
        return json.loads(local_path.read_text(encoding="utf-8"))

    async def append_event(self, event_name: str, payload: dict[str, Any]) -> None:
        envelope = {
            "timestamp": utc_now().isoformat(),
            "event": event_name,
            "payload": payload,
        }
        with self._events_file.open("a", encoding="utf-8") as fp:
            fp.write(json.dumps(envelope, ensure_ascii=True, default=str) + "\n")

    def read_events(self) -> list[dict[str, Any]]:
        if not self._events_file.exists():
            return []
        with self._events_file.open("r", encoding="utf-8") as fp:
            return [json.loads(line) for line in fp if line.strip()]
