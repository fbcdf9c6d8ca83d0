"""End-to-end capture -> identity -> dispatch -> escalation sequencing for one session."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pawsense.capture import MediaCaptureAdapter, RecordingSession
from pawsense.dispatch import ClassificationDispatcher
from pawsense.endpoints import resolve_emotion_endpoint, resolve_health_endpoint
from pawsense.errors import IdentityFlowError, InvalidMediaError
from pawsense.escalation import EscalationPolicy
from pawsense.identity import CreatePetHandoff, FlowResolution, FlowState, PetIdentityFlow
from pawsense.pets import PetDirectory
from pawsense.schemas import (
    CapturedMedia,
    ConditionResult,
    EmotionResult,
    MediaFile,
    MediaKind,
    PendingCaptureIntent,
    PetRecord,
    ScanPurpose,
    Species,
)

logger = logging.getLogger(__name__)

EmitFn = Callable[[str, dict[str, Any]], Awaitable[None]]


async def _discard(event_name: str, payload: dict[str, Any]) -> None:
    _ = (event_name, payload)


@dataclass
class SessionContext:
    """Active pet and species for the signed-in user; species is dog until a pet is chosen."""

    active_pet: PetRecord | None = None
    species: Species = Species.DOG

    def activate(self, pet: PetRecord) -> None:
        self.active_pet = pet
        self.species = pet.species


class ScanController:
    def __init__(
        self,
        capture: MediaCaptureAdapter,
        dispatcher: ClassificationDispatcher,
        escalation: EscalationPolicy,
        directory: PetDirectory,
        *,
        session: SessionContext | None = None,
        emit: EmitFn | None = None,
        on_create_pet: CreatePetHandoff | None = None,
    ):
        self._capture = capture
        self._dispatcher = dispatcher
        self._escalation = escalation
        self._directory = directory
        self._session = session or SessionContext()
        self._emit = emit or _discard
        self._on_create_pet = on_create_pet
        self._flow = self._new_flow()
        self._awaiting_upload: PendingCaptureIntent | None = None

    def _new_flow(self) -> PetIdentityFlow:
        return PetIdentityFlow(self._directory, on_create_pet=self._on_create_pet)

    @property
    def session(self) -> SessionContext:
        return self._session

    @property
    def flow(self) -> PetIdentityFlow:
        return self._flow

    @property
    def capture(self) -> MediaCaptureAdapter:
        return self._capture

    @property
    def dispatcher(self) -> ClassificationDispatcher:
        return self._dispatcher

    @property
    def escalation(self) -> EscalationPolicy:
        return self._escalation

    @property
    def awaiting_upload(self) -> PendingCaptureIntent | None:
        """Image intent whose picker was handed to the client and has not been scanned yet."""
        return self._awaiting_upload

    # Identity gate

    async def request_capture(self, media_kind: MediaKind, purpose: ScanPurpose = "emotion") -> FlowState:
        """Start a capture; goes straight to the capture when the session already has a pet."""
        intent = PendingCaptureIntent(media_kind=media_kind, purpose=purpose)
        if self._session.active_pet is not None and self._flow.state is FlowState.IDLE:
            await self._resume(intent)
            return self._flow.state

        self._flow.begin(intent)
        await self._emit("identity.required", {"media_kind": media_kind, "purpose": purpose})
        return self._flow.state

    async def answer_registered(self, registered: bool) -> FlowState:
        state = await self._flow.answer_registered(registered)
        if state is FlowState.CREATE_PET_PROMPT:
            await self._emit("identity.create_pet", {})
            self._flow = self._new_flow()
        return state

    def choose_species_tab(self, species: Any) -> list[PetRecord]:
        return self._flow.choose_species_tab(species)

    def choose_pet(self, pet_id: str | None) -> None:
        self._flow.choose_pet(pet_id)

    async def confirm_selection(self) -> FlowResolution | None:
        resolution = self._flow.confirm()
        if resolution is None:
            return None

        self._session.activate(resolution.pet)
        await self._emit(
            "identity.resolved",
            {"pet_id": resolution.pet.id, "species": resolution.pet.species.value},
        )
        await self._resume(resolution.intent)
        return resolution

    def cancel(self) -> None:
        self._flow.cancel()

    async def select_active_pet(self, pet_id: str) -> PetRecord:
        pets = await self._directory.list_pets()
        pet = next((p for p in pets if p.id == pet_id), None)
        if pet is None:
            raise IdentityFlowError(f"unknown pet {pet_id}")
        self._session.activate(pet)
        return pet

    async def _resume(self, intent: PendingCaptureIntent) -> None:
        await self._emit("capture.resumed", intent.model_dump())
        if intent.media_kind == "audio":
            await self.start_recording()
            return

        file = await self._capture.host.open_image_picker()
        if file is None:
            self._awaiting_upload = intent
            await self._emit("capture.skipped", intent.model_dump())
            return
        await self.submit_image(file, intent.purpose)

    def _require_identity(self) -> None:
        if self._flow.state is not FlowState.IDLE:
            raise IdentityFlowError("capture is waiting for pet identity")
        if self._session.active_pet is None:
            raise IdentityFlowError("no pet selected for this session")

    # Capture

    async def submit_image(
        self, file: MediaFile, purpose: ScanPurpose = "emotion"
    ) -> EmotionResult | ConditionResult | None:
        self._require_identity()
        media = self._capture.capture_image(file)
        return await self._scan(media, purpose)

    async def submit_audio_file(self, file: MediaFile) -> EmotionResult | ConditionResult | None:
        self._require_identity()
        media = self._capture.capture_audio_file(file)
        return await self._scan(media, "emotion")

    async def start_recording(self) -> RecordingSession:
        self._require_identity()
        recording = await self._capture.start_audio_capture()
        await self._emit("recording.started", {"session_id": recording.session_id})
        return recording

    async def stop_recording(self) -> EmotionResult | ConditionResult | None:
        recording = self._capture.recording
        if recording is None:
            raise InvalidMediaError("no recording in progress")
        media = await self._capture.stop_audio_capture(recording)
        return await self._scan(media, "emotion")

    # Dispatch and escalation

    async def _scan(
        self, media: CapturedMedia, purpose: ScanPurpose
    ) -> EmotionResult | ConditionResult | None:
        pet = self._session.active_pet
        self._awaiting_upload = None
        species = self._session.species
        if purpose == "health":
            endpoint = resolve_health_endpoint(species)
        else:
            endpoint = resolve_emotion_endpoint(media.kind, species)

        await self._emit(
            "dispatch.started",
            {"endpoint": endpoint, "media_kind": media.kind, "pet_id": pet.id if pet else None},
        )
        token = self._dispatcher.sink.next_token()
        result = await self._dispatcher.run(
            media, endpoint, pet=pet, species=species, call_site=purpose, token=token
        )
        if result is None:
            if self._dispatcher.sink.snapshot(purpose).token == token:
                await self._emit("dispatch.failed", {"endpoint": endpoint})
            else:
                # A newer scan owns the slot; nothing to announce or escalate.
                await self._emit("result.discarded", {"endpoint": endpoint, "token": token})
            return None

        await self._emit(
            "result.published",
            {"endpoint": endpoint, "label": result.label, "confidence": result.percent},
        )
        if isinstance(result, ConditionResult):
            event = self._escalation.evaluate(result)
            if event is not None:
                await self._emit("alert.scheduled", event.to_payload())
        return result

    def close(self) -> None:
        self._flow.cancel()
        self._capture.close()
