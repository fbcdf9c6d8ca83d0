"""Pydantic schemas for PawSense captures, results and API contracts."""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, computed_field, field_validator, model_validator

from pawsense.utils import clamp_confidence, round_half_up, utc_now


MediaKind = Literal["image", "audio"]
ScanPurpose = Literal["emotion", "health"]
EmotionLabel = Literal["Angry", "Happy", "Relaxed", "Sad", "Normal", "Scared"]

EMOTION_LABELS: tuple[str, ...] = ("Angry", "Happy", "Relaxed", "Sad", "Normal", "Scared")
SENTINEL_LABEL = "—"
DEFAULT_ADVICE = "Consult a veterinarian for proper diagnosis and treatment."


class Species(str, enum.Enum):
    DOG = "dog"
    CAT = "cat"

    @classmethod
    def parse(cls, value: Any) -> "Species":
        """Lenient parse; anything unrecognised is treated as a dog."""
        if isinstance(value, cls):
            return value
        token = str(value or "").strip().lower()
        for member in cls:
            if member.value == token:
                return member
        return cls.DOG


class MediaFile(BaseModel):
    filename: str = "upload"
    content_type: str = "application/octet-stream"
    data: bytes = Field(default=b"", repr=False)


class CapturedMedia(BaseModel):
    kind: MediaKind
    data: bytes = Field(repr=False)
    content_type: str
    filename: str
    preview_ref: str

    @property
    def field_name(self) -> str:
        return self.kind


class PetDraft(BaseModel):
    name: str = Field(min_length=1)
    species: Species = Species.DOG
    age: str = ""
    weight: str = ""
    sex: str = ""
    breed: str = ""
    other: str = ""
    medical: str = ""
    vet: str = ""

    @field_validator("species", mode="before")
    @classmethod
    def _parse_species(cls, value: Any) -> Species:
        return Species.parse(value)


class PetRecord(PetDraft):
    id: str
    species: Species = Field(default=Species.DOG, validation_alias=AliasChoices("species", "pet_type"))
    image_url: str = ""
    medical_report_url: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> str:
        return str(value)


class PendingCaptureIntent(BaseModel):
    media_kind: MediaKind
    purpose: ScanPurpose = "emotion"

    @model_validator(mode="after")
    def _health_is_image_only(self) -> "PendingCaptureIntent":
        if self.purpose == "health" and self.media_kind != "image":
            raise ValueError("health scans accept images only")
        return self


class EmotionResult(BaseModel):
    purpose: Literal["emotion"] = "emotion"
    label: EmotionLabel
    confidence: float = 0.0

    @field_validator("label", mode="before")
    @classmethod
    def _normalize_label(cls, value: Any) -> Any:
        token = str(value or "").strip().lower()
        for label in EMOTION_LABELS:
            if label.lower() == token:
                return label
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)

    @computed_field
    @property
    def percent(self) -> int:
        return round_half_up(self.confidence)


class ConditionResult(BaseModel):
    purpose: Literal["health"] = "health"
    label: str = "unknown"
    confidence: float = 0.0
    advice: str = DEFAULT_ADVICE

    @field_validator("label", mode="before")
    @classmethod
    def _normalize_label(cls, value: Any) -> str:
        return str(value or "").strip().lower() or "unknown"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, value: Any) -> float:
        return clamp_confidence(value)

    @field_validator("advice", mode="before")
    @classmethod
    def _default_advice(cls, value: Any) -> str:
        return str(value or "").strip() or DEFAULT_ADVICE

    @computed_field
    @property
    def percent(self) -> int:
        return round_half_up(self.confidence)


class AlertEvent(BaseModel):
    condition: str
    confidence: int

    def to_payload(self) -> dict[str, Any]:
        return {"disease": self.condition, "confidence": self.confidence}


class ResultSnapshot(BaseModel):
    purpose: ScanPurpose
    label: str = SENTINEL_LABEL
    confidence: float = 0.0
    percent: int = 0
    advice: str | None = None
    error: str | None = None
    loading: bool = False
    pet_id: str | None = None
    species: Species | None = None
    endpoint: str | None = None
    token: int = 0
    updated_at: datetime = Field(default_factory=utc_now)


class CaptureRequest(BaseModel):
    media_kind: MediaKind
    purpose: ScanPurpose = "emotion"


class IdentityAnswerRequest(BaseModel):
    registered: bool


class SpeciesTabRequest(BaseModel):
    species: Species = Species.DOG

    @field_validator("species", mode="before")
    @classmethod
    def _parse_species(cls, value: Any) -> Species:
        return Species.parse(value)


class PetChoiceRequest(BaseModel):
    pet_id: str
