"""Pydantic models for ProKnow API payloads.

Every model keeps unknown JSON fields (extra="allow") so that data returned
by newer API versions survives a round trip through the SDK.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from proknow.errors import InvalidOperationError


class DraftLock(BaseModel):
    """Server-issued lease on a structure set draft.

    Attributes:
        id: Lock id, sent as the ProKnow-Lock header on draft edits.
        created_at: Creation timestamp.
        expires_at: Expiry timestamp.
        expires_in: Milliseconds until expiry at the time the lock was issued.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    created_at: str | None = None
    expires_at: str | None = None
    expires_in: int = 0


class StructureSetRoiItem(BaseModel):
    """Region of interest in a structure set version.

    ROIs of an editable draft can be renamed, recolored, retyped and deleted;
    the changes are committed when the draft is approved.
    """

    model_config = ConfigDict(extra="allow")

    id: str
    name: str
    color: list[int] = Field(default_factory=list)
    type: str | None = None
    number: int | None = None
    algorithm: str | None = None
    tag: str | None = None

    _structure_set: Any = PrivateAttr(default=None)

    @property
    def is_editable(self) -> bool:
        return self._structure_set is not None and self._structure_set.is_editable

    def _bind(self, structure_set: Any) -> None:
        self._structure_set = structure_set

    def _draft_route(self) -> str:
        return f"{self._structure_set._route}/draft/rois/{self.id}"

    async def delete(self) -> None:
        """Delete the ROI from the draft and from its rois.

        Raises:
            InvalidOperationError: If the structure set is not editable.
        """
        draft_lock = self._require_editable()
        structure_set = self._structure_set
        await structure_set._proknow.requestor.delete(
            self._draft_route(), headers={"ProKnow-Lock": draft_lock.id}
        )
        structure_set.data.rois = [roi for roi in structure_set.data.rois if roi.id != self.id]

    async def save(self) -> None:
        """Save the name, color and type of the ROI to the draft.

        Raises:
            InvalidOperationError: If the structure set is not editable.
            ValueError: If color is not three integers in 0-255.
        """
        draft_lock = self._require_editable()
        color = validate_color(self.color)
        await self._structure_set._proknow.requestor.put(
            self._draft_route(),
            headers={"ProKnow-Lock": draft_lock.id},
            json={"name": self.name, "color": color, "type": self.type},
        )

    def _require_editable(self) -> "DraftLock":
        if self._structure_set is None:
            raise InvalidOperationError("Item is not editable.")
        return self._structure_set._require_editable()

    def __str__(self) -> str:
        return self.name


class StructureSetData(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str | None = None
    label: str | None = None
    name: str | None = None
    rois: list[StructureSetRoiItem] = Field(default_factory=list)


class Image(BaseModel):
    """One image of an image set.

    pos is the slice position along the SDK y axis, sent in micrometres and
    held in mm; pos_x, pos_y and pos_z are the image position in patient
    coordinates.
    """

    model_config = ConfigDict(extra="allow")

    id: str | None = None
    tag: str | None = None
    uid: str | None = None
    b: float | None = None
    m: float | None = None
    pos: float | None = None
    pos_x: float | None = None
    pos_y: float | None = None
    pos_z: float | None = None

    @field_validator("pos", mode="before")
    @classmethod
    def _pos_in_mm(cls, value: Any) -> Any:
        return _micrometres_to_mm(value)


class ImageSetData(BaseModel):
    model_config = ConfigDict(extra="allow")

    dicom: list[str] = Field(default_factory=list)
    dicom_token: str | None = None
    processed_id: str | None = None
    min_x: float | None = None
    min_y: float | None = None
    min_z: float | None = None
    max_x: float | None = None
    max_y: float | None = None
    max_z: float | None = None
    u_x: float | None = None
    u_y: float | None = None
    u_z: float | None = None
    v_x: float | None = None
    v_y: float | None = None
    v_z: float | None = None
    min_value: float | None = None
    max_value: float | None = None
    patient_position: str | None = None
    images: list[Image] = Field(default_factory=list)


class DoseSlice(BaseModel):
    model_config = ConfigDict(extra="allow")

    id: str | None = None
    pos: float | None = None

    @field_validator("pos", mode="before")
    @classmethod
    def _pos_in_mm(cls, value: Any) -> Any:
        return _micrometres_to_mm(value)


class DoseData(BaseModel):
    model_config = ConfigDict(extra="allow")

    dicom: list[str] = Field(default_factory=list)
    dicom_token: str | None = None
    processed_id: str | None = None
    min_x: float | None = None
    min_y: float | None = None
    min_z: float | None = None
    max_x: float | None = None
    max_y: float | None = None
    max_z: float | None = None
    resolution_x: int | None = None
    resolution_y: int | None = None
    resolution_z: int | None = None
    spacing_x: float | None = None
    spacing_y: float | None = None
    spacing_z: float | None = None
    size_x: float | None = None
    size_y: float | None = None
    size_z: float | None = None
    pixel_intercept: float | None = None
    pixel_slope: float | None = None
    min_value: float | None = None
    max_value: float | None = None
    summation_type: str | None = None
    units: str | None = None
    slices: list[DoseSlice] = Field(default_factory=list)


class EntityItem(BaseModel):
    """Fields shared by every patient entity.

    Instances are bound to a ProKnow client and workspace after validation;
    operations that touch the network go through that client.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str
    patient_id: str | None = Field(default=None, alias="patient")
    type: str
    uid: str | None = None
    modality: str | None = None
    description: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: str | None = None

    _proknow: Any = PrivateAttr(default=None)
    _workspace_id: str | None = PrivateAttr(default=None)

    @field_validator("metadata", mode="before")
    @classmethod
    def _normalize_metadata(cls, value: Any) -> Any:
        # custom metric numbers arrive as floats; keep whole values as ints
        if not isinstance(value, dict):
            return value if value is not None else {}
        return {
            key: int(item) if isinstance(item, float) and item.is_integer() else item
            for key, item in value.items()
        }

    @property
    def workspace_id(self) -> str | None:
        return self._workspace_id

    def _bind(self, proknow: Any, workspace_id: str) -> None:
        self._proknow = proknow
        self._workspace_id = workspace_id

    async def delete(self) -> None:
        """Delete the entity."""
        await self._proknow.requestor.delete(
            f"/workspaces/{self._workspace_id}/entities/{self.id}"
        )

    async def save(self) -> None:
        """Save the description and metadata of the entity."""
        await self._proknow.requestor.put(
            f"/workspaces/{self._workspace_id}/entities/{self.id}",
            json={"description": self.description, "metadata": self.metadata},
        )

    def __str__(self) -> str:
        return f"{self.type} | {self.uid}"


def resolve_download_path(path: str | Path, filename: str) -> Path:
    """Return path/filename when path is an existing directory, else path."""
    destination = Path(path)
    if destination.is_dir():
        return destination / filename
    return destination


def validate_color(color: Any) -> list[int]:
    """Return color as a list of three 0-255 integers.

    Raises:
        ValueError: If color is not three integers in 0-255.
    """
    rgb = list(color)
    if len(rgb) != 3 or any(
        not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= 255
        for value in rgb
    ):
        raise ValueError("The 'color' must be three integers between 0 and 255.")
    return rgb


def _micrometres_to_mm(value: Any) -> Any:
    # slice positions are sent as integer micrometres
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value / 1000
    return value
