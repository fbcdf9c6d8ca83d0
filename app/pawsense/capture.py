"""Media capture: picked image/audio files and live microphone recordings."""

from __future__ import annotations

import logging
import mimetypes
from dataclasses import dataclass, field
from datetime import datetime
from typing import Protocol
from uuid import uuid4

from pawsense.errors import CaptureDeniedError, InvalidMediaError, RecordingAlreadyActiveError
from pawsense.schemas import CapturedMedia, MediaFile, MediaKind
from pawsense.utils import utc_now

logger = logging.getLogger(__name__)

_GENERIC_TYPES = {"", "application/octet-stream", "binary/octet-stream"}


class AudioStream(Protocol):
    content_type: str

    async def stop(self) -> bytes: ...


class CaptureHost(Protocol):
    """Host environment that owns file pickers and the microphone."""

    async def open_image_picker(self) -> MediaFile | None: ...

    async def open_microphone(self) -> AudioStream: ...


@dataclass
class RecordingSession:
    stream: AudioStream
    session_id: str = field(default_factory=lambda: uuid4().hex)
    started_at: datetime = field(default_factory=utc_now)


def _effective_content_type(file: MediaFile) -> str:
    content_type = (file.content_type or "").split(";", 1)[0].strip().lower()
    if content_type in _GENERIC_TYPES:
        guessed, _ = mimetypes.guess_type(file.filename)
        content_type = (guessed or "").lower()
    return content_type


class MediaCaptureAdapter:
    def __init__(self, host: CaptureHost):
        self._host = host
        self._active: RecordingSession | None = None
        self._previews: dict[str, MediaKind] = {}
        self._current_preview: str | None = None

    @property
    def host(self) -> CaptureHost:
        return self._host

    @property
    def recording(self) -> RecordingSession | None:
        return self._active

    @property
    def live_previews(self) -> list[str]:
        return list(self._previews)

    def _build(self, kind: MediaKind, file: MediaFile) -> CapturedMedia:
        if not file.data:
            raise InvalidMediaError(f"{file.filename or kind} is empty")
        content_type = _effective_content_type(file)
        if not content_type.startswith(f"{kind}/"):
            raise InvalidMediaError(f"unsupported {kind} type: {content_type or 'unknown'}")

        preview_ref = f"preview://{uuid4().hex}"
        # The new capture supersedes whatever is currently on screen.
        if self._current_preview is not None:
            self.release(self._current_preview)
        self._previews[preview_ref] = kind
        self._current_preview = preview_ref

        return CapturedMedia(
            kind=kind,
            data=file.data,
            content_type=content_type,
            filename=file.filename or f"capture.{kind}",
            preview_ref=preview_ref,
        )

    def capture_image(self, file: MediaFile) -> CapturedMedia:
        return self._build("image", file)

    def capture_audio_file(self, file: MediaFile) -> CapturedMedia:
        return self._build("audio", file)

    async def start_audio_capture(self) -> RecordingSession:
        if self._active is not None:
            raise RecordingAlreadyActiveError()
        try:
            stream = await self._host.open_microphone()
        except PermissionError as exc:
            logger.info("microphone grant denied: %s", exc)
            raise CaptureDeniedError() from exc

        self._active = RecordingSession(stream=stream)
        logger.info("recording started session=%s", self._active.session_id)
        return self._active

    async def stop_audio_capture(self, session: RecordingSession) -> CapturedMedia:
        if self._active is None or session.session_id != self._active.session_id:
            raise InvalidMediaError("recording session is not active")
        try:
            data = await session.stream.stop()
        finally:
            self._active = None

        logger.info("recording stopped session=%s bytes=%d", session.session_id, len(data))
        extension = mimetypes.guess_extension(session.stream.content_type or "") or ".webm"
        return self.capture_audio_file(
            MediaFile(
                filename=f"recording-{session.session_id[:8]}{extension}",
                content_type=session.stream.content_type or "audio/webm",
                data=data,
            )
        )

    def release(self, preview_ref: str) -> None:
        if self._previews.pop(preview_ref, None) is not None:
            logger.debug("preview released %s", preview_ref)
        if self._current_preview == preview_ref:
            self._current_preview = None

    def close(self) -> None:
        for preview_ref in list(self._previews):
            self.release(preview_ref)
