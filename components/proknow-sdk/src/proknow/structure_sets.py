"""Structure set entities and the draft/lock workflow.

A structure set fetched from the API is read-only. draft() checks out an
editable copy guarded by a server lock, which a DraftLockRenewer keeps alive
until the draft is approved, discarded, released or closed:

    async with await structure_set.draft() as draft:
        await draft.create_roi("PTV", (255, 0, 0), "PTV")
        approved = await draft.approve(label="v2")
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal, Sequence

from pydantic import Field, PrivateAttr

from proknow.draft_lock import DraftLockRenewer
from proknow.errors import DraftLockRenewalError, InvalidOperationError, ProKnowHttpError
from proknow.models import (
    DraftLock,
    EntityItem,
    StructureSetData,
    StructureSetRoiItem,
    resolve_download_path,
    validate_color,
)
from proknow.structure_set_versions import StructureSetVersions

logger = logging.getLogger(__name__)

_NOT_LOCKED_MESSAGE = "Structure set is not currently locked for editing"


class StructureSetItem(EntityItem):
    """A structure set version, optionally an editable draft.

    is_editable is True only between a successful draft() and the first of
    approve(), discard(), release_lock(), close() or a failed lock renewal.
    """

    type: Literal["structure_set"] = "structure_set"
    data: StructureSetData = Field(default_factory=StructureSetData)

    _is_editable: bool = PrivateAttr(default=False)
    _is_draft: bool = PrivateAttr(default=False)
    _is_closed: bool = PrivateAttr(default=False)
    _draft_lock: DraftLock | None = PrivateAttr(default=None)
    _renewer: DraftLockRenewer | None = PrivateAttr(default=None)
    _renewal_error: DraftLockRenewalError | None = PrivateAttr(default=None)
    _versions: StructureSetVersions | None = PrivateAttr(default=None)

    @classmethod
    def _from_payload(
        cls, proknow: Any, workspace_id: str, payload: Any, *, is_draft: bool = False
    ) -> "StructureSetItem":
        item = cls.model_validate(payload)
        item._bind(proknow, workspace_id)
        item._is_draft = is_draft
        return item

    def _bind(self, proknow: Any, workspace_id: str) -> None:
        super()._bind(proknow, workspace_id)
        self._versions = StructureSetVersions(proknow, workspace_id, self.id)
        self._bind_rois()

    def _bind_rois(self) -> None:
        for roi in self.data.rois:
            roi._bind(self)

    @property
    def is_editable(self) -> bool:
        return self._is_editable

    @property
    def is_draft(self) -> bool:
        return self._is_draft

    @property
    def draft_lock(self) -> DraftLock | None:
        return self._draft_lock

    @property
    def rois(self) -> list[StructureSetRoiItem]:
        return self.data.rois

    @property
    def versions(self) -> StructureSetVersions:
        return self._versions

    @property
    def renewer(self) -> DraftLockRenewer | None:
        return self._renewer

    @property
    def renewal_error(self) -> DraftLockRenewalError | None:
        """The failure that ended background lock renewal, if any."""
        return self._renewal_error

    @property
    def _route(self) -> str:
        return f"/workspaces/{self.workspace_id}/structuresets/{self.id}"

    def _set_draft_lock(self, draft_lock: DraftLock) -> None:
        # a renewal landing after release/approve/discard must not revive the lock
        if not self._is_editable:
            logger.debug("Ignoring lock %s for closed draft %s", draft_lock.id, self.id)
            return
        self._draft_lock = draft_lock

    def _on_renewal_failed(self, error: DraftLockRenewalError) -> None:
        self._renewal_error = error
        self._draft_lock = None
        self._is_editable = False

    def _require_editable(self) -> DraftLock:
        if not self._is_editable or self._draft_lock is None:
            error = InvalidOperationError("Item is not editable.")
            if self._renewal_error is not None:
                raise error from self._renewal_error
            raise error
        return self._draft_lock

    def _roi_refs(self) -> list[dict[str, Any]]:
        return [{"id": roi.id, "tag": roi.tag} for roi in self.rois]

    async def draft(self) -> "StructureSetItem":
        """Check out an editable draft of this structure set.

        Acquires a draft lock, reusing the existing server draft when one is
        already open (HTTP 409), fetches the draft version and starts its lock
        renewer. Each call acquires a fresh lock.

        Returns:
            A new StructureSetItem that is a draft and editable.
        """
        try:
            payload = await self._proknow.requestor.post(f"{self._route}/draft")
        except ProKnowHttpError as exc:
            if exc.status_code != 409:
                raise
            logger.debug("Draft already exists for structure set %s, fetching lock", self.id)
            payload = await self._proknow.requestor.get(f"{self._route}/draft/lock")
        draft_lock = DraftLock.model_validate(payload)

        draft = await self.versions.get("draft")
        draft._is_draft = True
        draft._is_editable = True
        draft._draft_lock = draft_lock
        draft._renewer = DraftLockRenewer(self._proknow, draft)
        draft._renewer.start()
        logger.info("Opened draft of structure set %s (lock %s)", self.id, draft_lock.id)
        return draft

    async def create_roi(
        self, name: str, color: Sequence[int], type: str
    ) -> StructureSetRoiItem:
        """Create an ROI in the draft.

        Args:
            name: ROI name.
            color: Red, green and blue components, each 0-255.
            type: ROI interpreted type, e.g. "ORGAN" or "PTV".

        Returns:
            The created ROI, also appended to rois.

        Raises:
            InvalidOperationError: If the item is not editable.
            ValueError: If color is not three integers in 0-255.
        """
        draft_lock = self._require_editable()
        rgb = validate_color(color)
        payload = await self._proknow.requestor.post(
            f"{self._route}/draft/rois",
            headers={"ProKnow-Lock": draft_lock.id},
            json={"name": name, "color": rgb, "type": type},
        )
        roi = StructureSetRoiItem.model_validate(payload)
        roi._bind(self)
        self.data.rois.append(roi)
        return roi

    async def approve(
        self, label: str | None = None, message: str | None = None
    ) -> "StructureSetItem":
        """Approve the draft as a new version.

        Args:
            label: Optional version label.
            message: Optional version message.

        Returns:
            The newly approved structure set version.

        Raises:
            InvalidOperationError: If the item is not editable.
        """
        draft_lock = self._require_editable()
        await self._proknow.requestor.post(
            f"{self._route}/draft/approve",
            headers={"ProKnow-Lock": draft_lock.id},
            json={
                "version": self.data.version,
                "rois": self._roi_refs(),
                "label": label,
                "message": message,
            },
        )
        await self.stop_renewer()
        self._is_editable = False
        self._is_draft = False
        self._draft_lock = None
        logger.info("Approved draft of structure set %s", self.id)
        return await self.versions.get("approved")

    async def discard(self) -> None:
        """Discard the draft.

        Raises:
            InvalidOperationError: If the item is not editable.
        """
        draft_lock = self._require_editable()
        await self._proknow.requestor.post(
            f"{self._route}/draft/discard",
            headers={"ProKnow-Lock": draft_lock.id},
            json={"version": self.data.version, "rois": self._roi_refs()},
        )
        await self.stop_renewer()
        self._is_editable = False
        self._draft_lock = None
        logger.info("Discarded draft of structure set %s", self.id)

    async def download(self, path: str | Path) -> str:
        """Download this version as a DICOM RT structure set file.

        Args:
            path: An existing directory (the file is named RS.{uid}.dcm) or
                the full path of the file to write. Missing parent
                directories are created.

        Returns:
            The path of the written file.

        Raises:
            InvalidOperationError: If the item is a draft.
        """
        if self._is_draft:
            raise InvalidOperationError("Structure set drafts cannot be downloaded.")
        destination = resolve_download_path(path, f"RS.{self.uid}.dcm")
        route = f"{self._route}/versions/{self.data.version}/dicom"
        return await self._proknow.requestor.stream(route, destination)

    async def refresh(self) -> None:
        """Re-fetch the current version, replacing data and rois.

        Raises:
            InvalidOperationError: If the item is a draft.
        """
        if self._is_draft:
            raise InvalidOperationError("Cannot refresh a draft structure set.")
        payload = await self._proknow.requestor.get(self._route)
        self.data = StructureSetData.model_validate((payload or {}).get("data") or {})
        self._bind_rois()

    async def release_lock(self) -> None:
        """Stop the lock renewer and release the draft lock.

        A no-op when the item is not editable. A lock that already expired on
        the server is treated as released.
        """
        await self.stop_renewer()
        if not self._is_editable or self._draft_lock is None:
            return
        route = f"{self._route}/draft/lock/{self._draft_lock.id}"
        try:
            await self._proknow.requestor.delete(route)
        except ProKnowHttpError as exc:
            if exc.status_code != 403 or _NOT_LOCKED_MESSAGE not in exc.body:
                raise
            logger.debug("Draft lock for structure set %s had already expired", self.id)
        self._draft_lock = None
        self._is_editable = False

    def start_renewer(self) -> None:
        """Start the lock renewer; a no-op unless editable and not already renewing."""
        if not self._is_editable:
            return
        if self._renewer is not None and self._renewer.has_started:
            return
        self._renewer = DraftLockRenewer(self._proknow, self)
        self._renewer.start()

    async def stop_renewer(self) -> None:
        """Stop the lock renewer; a no-op when none is running."""
        renewer, self._renewer = self._renewer, None
        if renewer is not None:
            await renewer.stop()

    async def close(self) -> None:
        """Stop the renewer and release the lock. Calls after a successful close do nothing."""
        if self._is_closed:
            return
        try:
            await self.stop_renewer()
        finally:
            await self.release_lock()
        self._is_closed = True

    async def __aenter__(self) -> "StructureSetItem":
        return self

    async def __aexit__(self, _exc_type: object, _exc: object, _tb: object) -> None:
        await self.close()
