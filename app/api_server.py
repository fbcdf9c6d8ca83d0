"""HTTP entrypoint for the PawSense scan service (single user, single session)."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import httpx
from fastapi import FastAPI, File, Form, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from pawsense.capture import MediaCaptureAdapter
from pawsense.client_host import ClientCaptureHost
from pawsense.config import Settings, get_settings
from pawsense.dispatch import ClassificationDispatcher
from pawsense.errors import (
    CaptureDeniedError,
    EndpointUnavailableError,
    IdentityFlowError,
    InvalidMediaError,
    PawSenseError,
    RecordingAlreadyActiveError,
    ReportUnavailableError,
)
from pawsense.escalation import EscalationPolicy, confidence_band, important_actions
from pawsense.gateway import InferenceGateway
from pawsense.orchestration import ScanController
from pawsense.pets import LocalPetDirectory
from pawsense.reports import ReportService
from pawsense.schemas import (
    CaptureRequest,
    IdentityAnswerRequest,
    MediaFile,
    PetChoiceRequest,
    PetDraft,
    ScanPurpose,
    SpeciesTabRequest,
)
from pawsense.sink import ResultSink
from pawsense.storage import SessionStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger(__name__)

_ERROR_STATUS: dict[type[PawSenseError], int] = {
    InvalidMediaError: 422,
    RecordingAlreadyActiveError: 409,
    IdentityFlowError: 409,
    CaptureDeniedError: 403,
    ReportUnavailableError: 404,
    EndpointUnavailableError: 502,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


async def _read_upload(upload: UploadFile | None) -> MediaFile | None:
    if upload is None:
        return None
    return MediaFile(
        filename=upload.filename or "upload",
        content_type=upload.content_type or "application/octet-stream",
        data=await upload.read(),
    )


def build_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    store = SessionStore(settings)
    gateway = InferenceGateway(settings, transport=transport)
    directory = LocalPetDirectory(store)
    host = ClientCaptureHost()
    sink = ResultSink(store, discard_stale=settings.discard_stale_results)
    escalation = EscalationPolicy(gateway, min_confidence=settings.alert_min_confidence)
    reports = ReportService(store, gateway)

    async def emit(event_name: str, event_payload: dict[str, Any]) -> None:
        await store.append_event(event_name, {"timestamp": utc_now().isoformat(), **event_payload})

    controller = ScanController(
        MediaCaptureAdapter(host),
        ClassificationDispatcher(gateway, sink),
        escalation,
        directory,
        emit=emit,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        yield
        await escalation.drain()
        controller.close()

    api = FastAPI(title="PawSense API", version="1.0.0", lifespan=lifespan)
    api.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=False,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

    @api.exception_handler(PawSenseError)
    async def pawsense_error(_: Request, exc: PawSenseError) -> JSONResponse:
        status = next((code for kind, code in _ERROR_STATUS.items() if isinstance(exc, kind)), 400)
        return JSONResponse(status_code=status, content={"error": type(exc).__name__, "message": str(exc)})

    def _state(**extra: Any) -> dict[str, Any]:
        return {
            "identity": controller.flow.snapshot(),
            "active_pet_id": controller.session.active_pet.id if controller.session.active_pet else None,
            "species": controller.session.species.value,
            "prompt": host.take_prompt(),
            "scan_purpose": controller.awaiting_upload.purpose if controller.awaiting_upload else None,
            "recording": controller.capture.recording is not None,
            **extra,
        }

    @api.get("/health")
    async def health(probe: bool = False) -> dict[str, Any]:
        return {
            "status": "ok",
            "service": settings.app_name,
            "timestamp": utc_now().isoformat(),
            "inference_base_url": settings.inference_base_url,
            "discard_stale_results": settings.discard_stale_results,
            "probe_performed": probe,
            "inference": await gateway.probe() if probe else None,
            "s3_configured": bool(settings.s3_bucket),
        }

    @api.get("/v1/pets")
    async def list_pets() -> list[dict[str, Any]]:
        return [pet.model_dump(mode="json") for pet in await directory.list_pets()]

    @api.post("/v1/pets", status_code=201)
    async def create_pet(
        name: str = Form(...),
        pet_type: str = Form("Dog"),
        age: str = Form(""),
        weight: str = Form(""),
        sex: str = Form(""),
        breed: str = Form(""),
        other: str = Form(""),
        medical: str = Form(""),
        vet: str = Form(""),
        image: UploadFile | None = File(default=None),
        medical_file: UploadFile | None = File(default=None),
    ) -> dict[str, Any]:
        try:
            draft = PetDraft(
                name=name,
                species=pet_type,
                age=age,
                weight=weight,
                sex=sex,
                breed=breed,
                other=other,
                medical=medical,
                vet=vet,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors()) from exc

        record = await directory.create_pet(
            draft,
            image=await _read_upload(image),
            medical_file=await _read_upload(medical_file),
        )
        return record.model_dump(mode="json")

    @api.post("/v1/pets/active")
    async def set_active_pet(payload: PetChoiceRequest) -> dict[str, Any]:
        await controller.select_active_pet(payload.pet_id)
        return _state()

    @api.get("/v1/identity")
    async def identity_state() -> dict[str, Any]:
        return _state()

    @api.post("/v1/capture")
    async def request_capture(payload: CaptureRequest) -> dict[str, Any]:
        try:
            await controller.request_capture(payload.media_kind, payload.purpose)
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=exc.errors()) from exc
        return _state()

    @api.post("/v1/identity/answer")
    async def identity_answer(payload: IdentityAnswerRequest) -> dict[str, Any]:
        state = await controller.answer_registered(payload.registered)
        return _state(handoff="create_pet" if not payload.registered else None, answered_into=state.value)

    @api.post("/v1/identity/species")
    async def identity_species(payload: SpeciesTabRequest) -> dict[str, Any]:
        controller.choose_species_tab(payload.species)
        return _state()

    @api.post("/v1/identity/pet")
    async def identity_pet(payload: PetChoiceRequest) -> dict[str, Any]:
        controller.choose_pet(payload.pet_id)
        return _state()

    @api.post("/v1/identity/confirm")
    async def identity_confirm() -> dict[str, Any]:
        resolution = await controller.confirm_selection()
        return _state(resolved=resolution is not None)

    @api.post("/v1/identity/cancel")
    async def identity_cancel() -> dict[str, Any]:
        controller.cancel()
        return _state()

    @api.post("/v1/scan/{purpose}")
    async def scan(
        purpose: ScanPurpose,
        image: UploadFile | None = File(default=None),
        audio: UploadFile | None = File(default=None),
    ) -> dict[str, Any]:
        if (image is None) == (audio is None):
            raise HTTPException(status_code=422, detail="send exactly one of `image` or `audio`")
        if audio is not None:
            if purpose == "health":
                raise HTTPException(status_code=422, detail="health scans accept images only")
            await controller.submit_audio_file(await _read_upload(audio))
        else:
            await controller.submit_image(await _read_upload(image), purpose)
        return _results()

    @api.post("/v1/recording/stop")
    async def stop_recording(audio: UploadFile = File(...)) -> dict[str, Any]:
        if host.stream is None or controller.capture.recording is None:
            raise HTTPException(status_code=409, detail="no recording in progress")
        upload = await _read_upload(audio)
        host.stream.feed(upload.data, upload.content_type)
        await controller.stop_recording()
        return _results()

    def _results() -> dict[str, Any]:
        payload = controller.dispatcher.sink.as_dict()
        health_slot = payload["health"]
        payload["health_view"] = {
            "confidence_band": confidence_band(
                health_slot["percent"],
                loading=health_slot["loading"],
                min_confidence=settings.alert_min_confidence,
            ),
            "important_actions": important_actions(health_slot["label"]),
        }
        payload["in_flight"] = {
            "emotion": controller.dispatcher.in_flight("emotion"),
            "health": controller.dispatcher.in_flight("health"),
        }
        return payload

    @api.get("/v1/results")
    async def results() -> dict[str, Any]:
        return _results()

    @api.post("/v1/report")
    async def report() -> Response:
        filename, document = await reports.generate()
        return Response(
            content=document,
            media_type="application/pdf",
            headers={"Content-Disposition": f'attachment; filename="{filename}"'},
        )

    return api


app = build_app()
