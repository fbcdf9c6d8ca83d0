import math

import pytest
from pydantic import ValidationError

from pawsense.schemas import ConditionResult, EmotionResult, PendingCaptureIntent, PetRecord, Species
from pawsense.utils import clamp_confidence, round_half_up


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (-5, 0.0),
        (0, 0.0),
        (42.5, 42.5),
        (100, 100.0),
        (150, 100.0),
        (math.inf, 100.0),
        (math.nan, 0.0),
        ("73", 0.0),
        (None, 0.0),
        (True, 0.0),
    ],
)
def test_clamp_confidence(raw, expected):
    assert clamp_confidence(raw) == expected


def test_percent_rounds_half_up():
    assert round_half_up(86.5) == 87
    assert EmotionResult(label="Happy", confidence=87.6).percent == 88
    assert ConditionResult(label="fungal", confidence=59.4).percent == 59


def test_condition_result_coerces_missing_fields():
    result = ConditionResult.model_validate({"label": None, "confidence": None, "advice": None})

    assert result.label == "unknown"
    assert result.confidence == 0.0
    assert "veterinarian" in result.advice.lower()


def test_condition_label_is_lowercased():
    assert ConditionResult(label="  Ringworm ", confidence=70).label == "ringworm"


def test_emotion_label_is_case_insensitive_but_closed():
    assert EmotionResult(label="scared", confidence=12).label == "Scared"
    with pytest.raises(ValidationError):
        EmotionResult(label="Confused", confidence=12)


def test_species_parse_falls_back_to_dog():
    assert Species.parse("CAT") is Species.CAT
    assert Species.parse("hamster") is Species.DOG
    assert Species.parse(None) is Species.DOG


def test_pet_record_reads_pet_type_column():
    pet = PetRecord.model_validate({"id": 7, "name": "Miso", "pet_type": "Cat"})

    assert pet.id == "7"
    assert pet.species is Species.CAT


def test_health_intent_rejects_audio():
    with pytest.raises(ValidationError):
        PendingCaptureIntent(media_kind="audio", purpose="health")
