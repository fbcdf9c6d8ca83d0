"""Pet-record directory used by the identity flow."""

from __future__ import annotations

import json
import logging
from typing import Protocol
from uuid import uuid4

from pawsense.schemas import MediaFile, PetDraft, PetRecord
from pawsense.storage import SessionStore
from pawsense.utils import utc_now

logger = logging.getLogger(__name__)


class PetDirectory(Protocol):
    async def list_pets(self) -> list[PetRecord]: ...

    async def create_pet(
        self,
        draft: PetDraft,
        *,
        image: MediaFile | None = None,
        medical_file: MediaFile | None = None,
    ) -> PetRecord: ...


class LocalPetDirectory:
    """Pet records kept as a JSON list beside the session store."""

    def __init__(self, store: SessionStore):
        self._store = store
        self._path = store.root / "pets.json"

    def _load(self) -> list[PetRecord]:
        if not self._path.exists():
            return []
        raw = json.loads(self._path.read_text(encoding="utf-8"))
        return [PetRecord.model_validate(row) for row in raw]

    def _save(self, pets: list[PetRecord]) -> None:
        rows = [pet.model_dump(mode="json") for pet in pets]
        self._path.write_text(json.dumps(rows, ensure_ascii=True, indent=2), encoding="utf-8")

    async def list_pets(self) -> list[PetRecord]:
        return self._load()

    async def create_pet(
        self,
        draft: PetDraft,
        *,
        image: MediaFile | None = None,
        medical_file: MediaFile | None = None,
    ) -> PetRecord:
        pet_id = str(uuid4())
        stamp = int(utc_now().timestamp() * 1000)

        image_url = ""
        if image is not None and image.data:
            image_url = await self._store.store_blob(
                f"pet-images/{pet_id}",
                f"{stamp}_{image.filename}",
                image.data,
                content_type=image.content_type,
            )

        report_url = ""
        if medical_file is not None and medical_file.data:
            report_url = await self._store.store_blob(
                f"medical-report/{pet_id}",
                f"{stamp}_{medical_file.filename}",
                medical_file.data,
                content_type=medical_file.content_type,
            )

        record = PetRecord(
            id=pet_id,
            **draft.model_dump(),
            image_url=image_url,
            medical_report_url=report_url,
        )
        pets = self._load()
        pets.append(record)
        self._save(pets)
        logger.info("pet created id=%s species=%s", record.id, record.species.value)
        return record
