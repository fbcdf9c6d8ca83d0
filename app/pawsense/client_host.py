"""Capture host for a remote client that owns the file picker and microphone."""

from __future__ import annotations

from pawsense.schemas import MediaFile

PROMPT_IMAGE_PICKER = "open_image_picker"
PROMPT_RECORD_AUDIO = "record_audio"


class UploadedAudioStream:
    """Recording whose bytes arrive as one upload when the client stops recording."""

    def __init__(self, content_type: str = "audio/webm"):
        self.content_type = content_type
        self._data = b""

    def feed(self, data: bytes, content_type: str | None = None) -> None:
        self._data = data
        if content_type:
            self.content_type = content_type

    async def stop(self) -> bytes:
        return self._data


class ClientCaptureHost:
    def __init__(self) -> None:
        self._prompt: str | None = None
        self._stream: UploadedAudioStream | None = None

    @property
    def stream(self) -> UploadedAudioStream | None:
        return self._stream

    def take_prompt(self) -> str | None:
        prompt, self._prompt = self._prompt, None
        return prompt

    async def open_image_picker(self) -> MediaFile | None:
        # The file arrives later through the scan upload.
        self._prompt = PROMPT_IMAGE_PICKER
        return None

    async def open_microphone(self) -> UploadedAudioStream:
        self._prompt = PROMPT_RECORD_AUDIO
        self._stream = UploadedAudioStream()
        return self._stream
