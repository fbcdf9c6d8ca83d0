import asyncio

import pytest

from pawsense.errors import IdentityFlowError
from pawsense.identity import FlowState, PetIdentityFlow
from pawsense.schemas import PendingCaptureIntent, PetRecord


class StubDirectory:
    def __init__(self, pets):
        self.pets = list(pets)

    async def list_pets(self):
        return list(self.pets)

    async def create_pet(self, draft, *, image=None, medical_file=None):
        raise NotImplementedError


PETS = [
    PetRecord(id="dog-1", name="Rex", species="dog"),
    PetRecord(id="dog-2", name="Rex", species="dog"),
    PetRecord(id="cat-1", name="Miso", species="cat"),
]


def _flow_at_select(**kwargs) -> PetIdentityFlow:
    flow = PetIdentityFlow(StubDirectory(PETS), **kwargs)
    flow.begin(PendingCaptureIntent(media_kind="image"))
    asyncio.run(flow.answer_registered(True))
    return flow


def test_begin_asks_if_registered():
    flow = PetIdentityFlow(StubDirectory(PETS))
    flow.begin(PendingCaptureIntent(media_kind="audio"))

    assert flow.state is FlowState.ASK_REGISTERED
    assert flow.intent.media_kind == "audio"


def test_begin_twice_is_rejected():
    flow = PetIdentityFlow(StubDirectory(PETS))
    flow.begin(PendingCaptureIntent(media_kind="image"))

    with pytest.raises(IdentityFlowError):
        flow.begin(PendingCaptureIntent(media_kind="audio"))


def test_answer_no_hands_off_and_drops_intent():
    handoffs: list[str] = []

    async def on_create_pet():
        handoffs.append("create")

    flow = PetIdentityFlow(StubDirectory(PETS), on_create_pet=on_create_pet)
    flow.begin(PendingCaptureIntent(media_kind="image"))
    state = asyncio.run(flow.answer_registered(False))

    assert state is FlowState.CREATE_PET_PROMPT
    assert flow.intent is None
    assert handoffs == ["create"]


def test_answer_yes_lists_dogs_by_default():
    flow = _flow_at_select()

    assert flow.state is FlowState.SELECT_EXISTING
    assert [p.id for p in flow.visible_pets] == ["dog-1", "dog-2"]


def test_confirm_without_selection_is_a_noop():
    flow = _flow_at_select()

    assert flow.confirm() is None
    assert flow.state is FlowState.SELECT_EXISTING
    assert flow.intent is not None


def test_species_tab_clears_hidden_selection():
    flow = _flow_at_select()
    flow.choose_pet("dog-2")

    visible = flow.choose_species_tab("cat")

    assert [p.id for p in visible] == ["cat-1"]
    assert flow.selected_pet_id is None


def test_choose_pet_must_be_visible():
    flow = _flow_at_select()

    with pytest.raises(IdentityFlowError):
        flow.choose_pet("cat-1")


def test_confirm_resolves_by_id_and_returns_to_idle():
    flow = _flow_at_select()
    flow.choose_pet("dog-2")

    resolution = flow.confirm()

    assert resolution is not None
    assert resolution.pet.id == "dog-2"
    assert resolution.intent.media_kind == "image"
    assert flow.state is FlowState.IDLE
    assert flow.intent is None


def test_cancel_discards_intent_from_any_state():
    flow = PetIdentityFlow(StubDirectory(PETS))
    flow.begin(PendingCaptureIntent(media_kind="image"))
    flow.cancel()
    assert flow.state is FlowState.IDLE
    assert flow.intent is None

    flow = _flow_at_select()
    flow.choose_pet("dog-1")
    flow.cancel()
    assert flow.state is FlowState.IDLE
    assert flow.selected_pet_id is None
