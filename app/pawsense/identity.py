"""Pet-identity resolution flow gating every capture.

One exclusive state replaces the separate "registered?", "select pet" and
"add pet?" popups, so two prompts can never be open together.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from pawsense.errors import IdentityFlowError
from pawsense.pets import PetDirectory
from pawsense.schemas import PendingCaptureIntent, PetRecord, Species

logger = logging.getLogger(__name__)

CreatePetHandoff = Callable[[], Awaitable[None]]


class FlowState(str, enum.Enum):
    IDLE = "idle"
    ASK_REGISTERED = "ask_registered"
    SELECT_EXISTING = "select_existing"
    CREATE_PET_PROMPT = "create_pet_prompt"


@dataclass(frozen=True)
class FlowResolution:
    pet: PetRecord
    intent: PendingCaptureIntent


class PetIdentityFlow:
    def __init__(self, directory: PetDirectory, *, on_create_pet: CreatePetHandoff | None = None):
        self._directory = directory
        self._on_create_pet = on_create_pet
        self._state = FlowState.IDLE
        self._intent: PendingCaptureIntent | None = None
        self._pets: list[PetRecord] = []
        self._species_tab = Species.DOG
        self._selected_pet_id: str | None = None

    @property
    def state(self) -> FlowState:
        return self._state

    @property
    def intent(self) -> PendingCaptureIntent | None:
        return self._intent

    @property
    def species_tab(self) -> Species:
        return self._species_tab

    @property
    def selected_pet_id(self) -> str | None:
        return self._selected_pet_id

    @property
    def visible_pets(self) -> list[PetRecord]:
        return [pet for pet in self._pets if pet.species == self._species_tab]

    def _require(self, *states: FlowState) -> None:
        if self._state not in states:
            allowed = ", ".join(s.value for s in states)
            raise IdentityFlowError(f"flow is {self._state.value}; expected {allowed}")

    def _to_idle(self) -> None:
        self._state = FlowState.IDLE
        self._intent = None
        self._pets = []
        self._species_tab = Species.DOG
        self._selected_pet_id = None

    def begin(self, intent: PendingCaptureIntent) -> None:
        self._require(FlowState.IDLE)
        self._intent = intent
        self._state = FlowState.ASK_REGISTERED
        logger.info("identity flow started for %s/%s capture", intent.purpose, intent.media_kind)

    async def answer_registered(self, registered: bool) -> FlowState:
        self._require(FlowState.ASK_REGISTERED)
        if not registered:
            # Pet creation happens elsewhere; the capture that started this flow is dropped.
            self._intent = None
            self._state = FlowState.CREATE_PET_PROMPT
            logger.info("identity flow handed off to pet creation")
            if self._on_create_pet is not None:
                await self._on_create_pet()
            return self._state

        self._pets = await self._directory.list_pets()
        self._species_tab = Species.DOG
        self._selected_pet_id = None
        self._state = FlowState.SELECT_EXISTING
        return self._state

    def choose_species_tab(self, species: Any) -> list[PetRecord]:
        self._require(FlowState.SELECT_EXISTING)
        self._species_tab = Species.parse(species)
        if self._selected_pet_id and not any(p.id == self._selected_pet_id for p in self.visible_pets):
            self._selected_pet_id = None
        return self.visible_pets

    def choose_pet(self, pet_id: str | None) -> None:
        self._require(FlowState.SELECT_EXISTING)
        if not pet_id:
            self._selected_pet_id = None
            return
        if not any(p.id == pet_id for p in self.visible_pets):
            raise IdentityFlowError(f"pet {pet_id} is not listed under {self._species_tab.value}")
        self._selected_pet_id = pet_id

    def confirm(self) -> FlowResolution | None:
        """Finish the flow; None (and no transition) while no pet is chosen."""
        self._require(FlowState.SELECT_EXISTING)
        pet = next((p for p in self._pets if p.id == self._selected_pet_id), None)
        if pet is None or self._intent is None:
            return None

        resolution = FlowResolution(pet=pet, intent=self._intent)
        self._to_idle()
        logger.info("identity resolved to pet=%s species=%s", pet.id, pet.species.value)
        return resolution

    def cancel(self) -> None:
        if self._state is not FlowState.IDLE:
            logger.info("identity flow cancelled from %s", self._state.value)
        self._to_idle()

    def snapshot(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "intent": self._intent.model_dump() if self._intent else None,
            "species_tab": self._species_tab.value,
            "selected_pet_id": self._selected_pet_id,
            "pets": [{"id": p.id, "name": p.name} for p in self.visible_pets],
        }
