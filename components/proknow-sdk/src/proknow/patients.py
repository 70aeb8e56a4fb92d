"""Patients and the entity summaries listed under their studies."""

from __future__ import annotations

import logging
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr

from proknow.entities import EntitySummary

logger = logging.getLogger(__name__)


class StudySummary(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str
    name: str | None = None
    entities: list[EntitySummary] = Field(default_factory=list)


class PatientItem(BaseModel):
    """A patient with its studies and entity summaries."""

    model_config = ConfigDict(extra="allow")

    id: str
    mrn: str | None = None
    name: str | None = None
    birth_date: str | None = None
    sex: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    studies: list[StudySummary] = Field(default_factory=list)

    _proknow: Any = PrivateAttr(default=None)
    _workspace_id: str | None = PrivateAttr(default=None)

    @property
    def workspace_id(self) -> str | None:
        return self._workspace_id

    def _bind(self, proknow: Any, workspace_id: str) -> None:
        self._proknow = proknow
        self._workspace_id = workspace_id
        for study in self.studies:
            for entity in study.entities:
                entity._bind(proknow, workspace_id, self.id)

    def find_entities(
        self, predicate: Callable[[EntitySummary], bool] | None
    ) -> list[EntitySummary]:
        """Return the entity summaries matching predicate.

        Entities are visited depth first, each parent before its children.
        A None predicate matches nothing.
        """
        if predicate is None:
            return []
        matches: list[EntitySummary] = []
        stack = [entity for study in reversed(self.studies) for entity in reversed(study.entities)]
        while stack:
            entity = stack.pop()
            if predicate(entity):
                matches.append(entity)
            stack.extend(reversed(entity.entities))
        return matches

    async def refresh(self) -> None:
        """Re-fetch the patient, replacing its fields and studies."""
        fresh = await self._proknow.patients.get(self._workspace_id, self.id)
        for name in type(self).model_fields:
            setattr(self, name, getattr(fresh, name))
        self.__pydantic_extra__ = dict(fresh.__pydantic_extra__ or {})
        self._bind(self._proknow, self._workspace_id)


class Patients:
    """Patient lookups for a ProKnow client."""

    def __init__(self, proknow: Any) -> None:
        self._proknow = proknow

    async def get(self, workspace_id: str, patient_id: str) -> PatientItem:
        """Fetch a patient by id.

        Args:
            workspace_id: ProKnow id of the workspace.
            patient_id: ProKnow id of the patient.

        Returns:
            The patient; its entity summaries are ready for get().
        """
        payload = await self._proknow.requestor.get(
            f"/workspaces/{workspace_id}/patients/{patient_id}"
        )
        patient = PatientItem.model_validate(payload)
        patient._bind(self._proknow, workspace_id)
        logger.debug("Fetched patient %s with %d studies", patient.id, len(patient.studies))
        return patient
