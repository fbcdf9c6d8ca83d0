"""Species and media-kind routing to inference endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pawsense.schemas import MediaKind, Species

EndpointId = Literal["dog-emotion", "cat-emotion", "audio-emotion", "dog-skin", "cat-skin"]

ENDPOINT_PATHS: dict[str, str] = {
    "dog-emotion": "/predict",
    "cat-emotion": "/predict_cat",
    "audio-emotion": "/predict_audio",
    "dog-skin": "/dog-skin",
    "cat-skin": "/cat-skin",
}

ENDPOINT_MEDIA: dict[str, str] = {
    "dog-emotion": "image",
    "cat-emotion": "image",
    "audio-emotion": "audio",
    "dog-skin": "image",
    "cat-skin": "image",
}

HEALTH_ENDPOINTS = frozenset({"dog-skin", "cat-skin"})

_IMAGE_EMOTION = {Species.DOG: "dog-emotion", Species.CAT: "cat-emotion"}
_HEALTH = {Species.DOG: "dog-skin", Species.CAT: "cat-skin"}


def resolve_emotion_endpoint(media_kind: MediaKind, species: Any) -> EndpointId:
    if media_kind == "audio":
        return "audio-emotion"
    return _IMAGE_EMOTION[Species.parse(species)]


def resolve_health_endpoint(species: Any) -> EndpointId:
    return _HEALTH[Species.parse(species)]


def endpoint_path(endpoint: str) -> str:
    try:
        return ENDPOINT_PATHS[endpoint]
    except KeyError:
        raise ValueError(f"unknown endpoint: {endpoint}") from None
