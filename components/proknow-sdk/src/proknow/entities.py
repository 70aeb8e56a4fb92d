"""Patient entities and the entity resolution pipeline.

EntitySummary.get() polls the entity until the server reports it completed,
then validates the payload into one member of the Entity union. Image sets
and doses make a second round trip to the RTV service (process_dicom) for
their geometry, which is remapped into SDK axes.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from pathlib import Path
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, TypeAdapter

from proknow.coordinates import remap_dose_data, remap_image_set_data
from proknow.errors import ProKnowError
from proknow.models import DoseData, EntityItem, ImageSetData, resolve_download_path
from proknow.polling import PollPolicy, poll_until
from proknow.rtv_requestor import ObjectType, RtvRequestor
from proknow.structure_sets import StructureSetItem

logger = logging.getLogger(__name__)

# Concurrent image downloads per image set
MAX_CONCURRENT_DOWNLOADS = 4


def _is_completed(payload: Any) -> bool:
    return isinstance(payload, dict) and payload.get("status") == "completed"


class ImageSetItem(EntityItem):
    type: Literal["image_set"] = "image_set"
    data: ImageSetData = Field(default_factory=ImageSetData)

    async def download(self, path: str | Path) -> str:
        """Download every image of the set as DICOM files.

        The images are written to a folder named {modality}.{uid} inside path.

        Args:
            path: Parent directory of the image set folder.

        Returns:
            The image set folder.

        Raises:
            ProKnowError: If the image set folder path is an existing file.
        """
        folder = Path(path) / f"{self.modality}.{self.uid}"
        if folder.is_file():
            raise ProKnowError(
                f"The image set download folder path '{path}' is a path to an existing file."
            )
        folder.mkdir(parents=True, exist_ok=True)

        semaphore = asyncio.Semaphore(MAX_CONCURRENT_DOWNLOADS)
        requestor = self._proknow.requestor

        async def _download(image: Any) -> str:
            async with semaphore:
                route = (
                    f"/workspaces/{self.workspace_id}/imagesets/{self.id}"
                    f"/images/{image.id}/dicom"
                )
                return await requestor.stream(route, folder / f"{self.modality}.{image.uid}")

        tasks = [asyncio.create_task(_download(image)) for image in self.data.images]
        try:
            await asyncio.gather(*tasks)
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise
        logger.info("Downloaded %d images to %s", len(self.data.images), folder)
        return str(folder)

    async def get_image_data(self, index: int) -> bytes:
        """Fetch the pixel data of one image from the RTV service."""
        image = self.data.images[index]
        headers = await _rtv_headers(
            self._proknow.rtv_requestor, ObjectType.IMAGE_SET, self.data.dicom_token
        )
        return await self._proknow.rtv_requestor.get_binary(
            f"/imageset/{self.data.processed_id}/image/{image.tag}", headers=headers
        )


class DoseItem(EntityItem):
    type: Literal["dose"] = "dose"
    data: DoseData = Field(default_factory=DoseData)

    async def download(self, path: str | Path) -> str:
        """Download the dose as a DICOM RT dose file named RD.{uid}.dcm."""
        destination = resolve_download_path(path, f"RD.{self.uid}.dcm")
        return await self._proknow.requestor.stream(
            f"/workspaces/{self.workspace_id}/doses/{self.id}/dicom", destination
        )

    async def get_slice_data(self, index: int) -> list[int]:
        """Fetch one dose slice from the RTV service as unsigned 16-bit values.

        Raises:
            ProKnowError: If the slice has an odd number of bytes.
        """
        dose_slice = self.data.slices[index]
        headers = await _rtv_headers(
            self._proknow.rtv_requestor, ObjectType.DOSE, self.data.dicom_token
        )
        content = await self._proknow.rtv_requestor.get_binary(
            f"/dose/{self.data.processed_id}/slice/{dose_slice.id}", headers=headers
        )
        if len(content) % 2 != 0:
            raise ProKnowError("Dose slices should contain an even number of bytes.")
        return list(struct.unpack(f">{len(content) // 2}H", content))


class PlanItem(EntityItem):
    type: Literal["plan"] = "plan"
    data: dict[str, Any] = Field(default_factory=dict)

    async def download(self, path: str | Path) -> str:
        """Download the plan as a DICOM RT plan file named RP.{uid}.dcm."""
        destination = resolve_download_path(path, f"RP.{self.uid}.dcm")
        return await self._proknow.requestor.stream(
            f"/workspaces/{self.workspace_id}/plans/{self.id}/dicom", destination
        )


Entity = Annotated[
    Union[ImageSetItem, StructureSetItem, PlanItem, DoseItem],
    Field(discriminator="type"),
]

_ENTITY_ADAPTER: TypeAdapter[Entity] = TypeAdapter(Entity)


async def _rtv_headers(
    rtv_requestor: RtvRequestor, object_type: ObjectType, dicom_token: str | None
) -> dict[str, str]:
    return {
        "Authorization": f"Bearer {dicom_token}",
        "Accept-Version": await rtv_requestor.get_api_version(object_type),
    }


async def process_dicom(
    rtv_requestor: RtvRequestor,
    object_type: ObjectType,
    data: dict[str, Any],
    *,
    policy: PollPolicy,
) -> dict[str, Any]:
    """Have the RTV service process an image set or dose.

    Posts the DICOM object ids with the entity's bearer token, polls until
    the service reports the object completed and remaps the returned
    geometry into SDK axes.

    Args:
        rtv_requestor: RTV service client.
        object_type: ObjectType.IMAGE_SET or ObjectType.DOSE.
        data: The entity's data block from the primary API.
        policy: Completion poll budget.

    Returns:
        The entity data merged with the remapped RTV geometry. The id of the
        processed object is stored as processed_id.

    Raises:
        ProKnowTimeoutError: If processing does not complete within the budget.
    """
    if object_type is ObjectType.IMAGE_SET:
        remap = remap_image_set_data
    elif object_type is ObjectType.DOSE:
        remap = remap_dose_data
    else:
        raise ProKnowError(f"The RTV service does not process '{object_type.value}' entities.")

    headers = await _rtv_headers(rtv_requestor, object_type, data.get("dicom_token"))
    response = await poll_until(
        lambda: rtv_requestor.post(
            f"/{object_type.rtv_name}", headers=headers, json={"data": data.get("dicom")}
        ),
        _is_completed,
        policy=policy,
        description=f"{object_type.value} processing",
    )
    merged = dict(data)
    if response.get("data"):
        merged.update(remap(response["data"]))
    merged["processed_id"] = response.get("id")
    return merged


async def deserialize_entity(proknow: Any, workspace_id: str, payload: dict[str, Any]) -> Entity:
    """Validate an entity payload into its typed item.

    Raises:
        EntityTypeError: If the payload type is not a supported entity type.
    """
    object_type = ObjectType.from_entity_type(payload.get("type"))
    if object_type in (ObjectType.IMAGE_SET, ObjectType.DOSE):
        payload = {
            **payload,
            "data": await process_dicom(
                proknow.rtv_requestor,
                object_type,
                payload.get("data") or {},
                policy=proknow.entity_poll_policy,
            ),
        }
    item = _ENTITY_ADAPTER.validate_python(payload)
    item._bind(proknow, workspace_id)
    return item


class EntitySummary(BaseModel):
    """Entity entry from a patient listing.

    A frozen snapshot; fetch the patient again to see status changes.
    """

    model_config = ConfigDict(extra="allow", frozen=True)

    id: str
    type: str
    uid: str | None = None
    status: str | None = None
    entities: list["EntitySummary"] = Field(default_factory=list)

    _proknow: Any = PrivateAttr(default=None)
    _workspace_id: str | None = PrivateAttr(default=None)
    _patient_id: str | None = PrivateAttr(default=None)

    @property
    def workspace_id(self) -> str | None:
        return self._workspace_id

    @property
    def patient_id(self) -> str | None:
        return self._patient_id

    def _bind(self, proknow: Any, workspace_id: str, patient_id: str) -> None:
        self._proknow = proknow
        self._workspace_id = workspace_id
        self._patient_id = patient_id
        for entity in self.entities:
            entity._bind(proknow, workspace_id, patient_id)

    async def get(self) -> Entity:
        """Fetch the full entity once the server reports it completed.

        Returns:
            ImageSetItem, StructureSetItem, PlanItem or DoseItem.

        Raises:
            EntityTypeError: If the entity type is not supported. No request
                is made in that case.
            ProKnowTimeoutError: If the entity, or its RTV processing, does
                not complete within the entity poll budget.
        """
        object_type = ObjectType.from_entity_type(self.type)
        route = f"/workspaces/{self._workspace_id}/{object_type.route}/{self.id}"
        payload = await poll_until(
            lambda: self._proknow.requestor.get(route),
            _is_completed,
            policy=self._proknow.entity_poll_policy,
            description=object_type.value,
        )
        logger.debug("Entity %s (%s) completed", self.id, object_type.value)
        return await deserialize_entity(self._proknow, self._workspace_id, payload)

    async def delete(self) -> None:
        """Delete the entity."""
        await self._proknow.requestor.delete(
            f"/workspaces/{self._workspace_id}/entities/{self.id}"
        )
