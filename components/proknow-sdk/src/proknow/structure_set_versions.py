"""Access to the versions of a structure set."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, PrivateAttr

from proknow.errors import InvalidOperationError
from proknow.models import resolve_download_path
from proknow.polling import poll_until

if TYPE_CHECKING:
    from proknow.structure_sets import StructureSetItem

logger = logging.getLogger(__name__)


class StructureSetVersions:
    """Versions of one structure set.

    Args:
        proknow: Root client.
        workspace_id: ProKnow id of the workspace.
        structure_set_id: ProKnow id of the structure set.
    """

    def __init__(self, proknow: Any, workspace_id: str, structure_set_id: str) -> None:
        self._proknow = proknow
        self.workspace_id = workspace_id
        self.structure_set_id = structure_set_id

    @property
    def route(self) -> str:
        return f"/workspaces/{self.workspace_id}/structuresets/{self.structure_set_id}"

    async def delete(self, version_id: str) -> None:
        """Delete a version."""
        await self._proknow.requestor.delete(f"{self.route}/versions/{version_id}")

    async def get(self, version_id: str) -> "StructureSetItem":
        """Fetch a version of the structure set.

        Args:
            version_id: A version id, or "draft" or "approved".

        Returns:
            The structure set item. is_draft is True only for "draft"; the
            item is never editable until draft() is called.
        """
        from proknow.structure_sets import StructureSetItem

        payload = await self._proknow.requestor.get(self.route, params={"version": version_id})
        return StructureSetItem._from_payload(
            self._proknow, self.workspace_id, payload, is_draft=version_id == "draft"
        )

    async def query(self) -> list["StructureSetVersionItem"]:
        """List the versions of the structure set."""
        payload = await self._proknow.requestor.get(f"{self.route}/versions")
        items = [StructureSetVersionItem.model_validate(entry) for entry in payload or []]
        for item in items:
            item._bind(self._proknow, self)
        return items


class StructureSetVersionItem(BaseModel):
    """Summary of one structure set version."""

    model_config = ConfigDict(extra="allow")

    version: str
    status: str | None = None
    label: str | None = None
    message: str | None = None

    _proknow: Any = PrivateAttr(default=None)
    _versions: StructureSetVersions | None = PrivateAttr(default=None)

    @property
    def is_draft(self) -> bool:
        return self.status == "draft"

    def _bind(self, proknow: Any, versions: StructureSetVersions) -> None:
        self._proknow = proknow
        self._versions = versions

    @property
    def _route(self) -> str:
        return f"{self._versions.route}/versions/{self.version}"

    async def delete(self) -> None:
        """Delete this version.

        Raises:
            InvalidOperationError: If this is the draft version.
        """
        if self.is_draft:
            raise InvalidOperationError("Draft versions of structure sets cannot be deleted.")
        await self._versions.delete(self.version)

    async def get(self) -> "StructureSetItem":
        """Fetch the structure set item for this version."""
        return await self._versions.get("draft" if self.is_draft else self.version)

    async def revert(self) -> "StructureSetItem":
        """Approve this version again, making it the current approved version.

        Raises:
            InvalidOperationError: If this is the draft version.
        """
        if self.is_draft:
            raise InvalidOperationError("Structure sets cannot be reverted to draft versions.")
        await self._proknow.requestor.post(f"{self._versions.route}/approve/{self.version}")
        return await self._versions.get("approved")

    async def save(self) -> None:
        """Save the label and message of this version.

        Raises:
            InvalidOperationError: If this is the draft version.
        """
        if self.is_draft:
            raise InvalidOperationError("Draft versions of structure sets cannot be saved.")
        await self._proknow.requestor.put(
            self._route, json={"label": self.label, "message": self.message}
        )

    async def download(self, path: str | Path) -> str:
        """Download this version as a DICOM RT structure set file.

        Waits for the server to report the version ready before streaming.

        Args:
            path: An existing directory (the file is named RS.{version}.dcm)
                or the full path of the file to write.

        Returns:
            The path of the written file.

        Raises:
            InvalidOperationError: If this is the draft version.
            ProKnowTimeoutError: If the version never becomes ready.
        """
        if self.is_draft:
            raise InvalidOperationError("Draft versions of structure sets cannot be downloaded.")
        destination = resolve_download_path(path, f"RS.{self.version}.dcm")
        await self.wait_for_ready_status()
        return await self._proknow.requestor.stream(f"{self._route}/dicom", destination)

    async def wait_for_ready_status(self) -> None:
        await poll_until(
            lambda: self._proknow.requestor.get(f"{self._route}/status"),
            lambda payload: (payload or {}).get("status") == "ready",
            policy=self._proknow.version_poll_policy,
            description="structure set version",
            status="ready",
        )

    def __str__(self) -> str:
        return self.label or self.version
