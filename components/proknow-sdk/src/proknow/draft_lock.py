"""Background renewal of structure set draft locks."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from proknow.errors import DraftLockRenewalError, InvalidOperationError
from proknow.models import DraftLock

if TYPE_CHECKING:
    from proknow.structure_sets import StructureSetItem

logger = logging.getLogger(__name__)


class DraftLockRenewer:
    """Keeps the draft lock of one structure set alive.

    The renewal buffer is read from the client once, at construction; later
    changes to ProKnow.lock_renewal_buffer only affect new renewers.

    Renewals run in a single asyncio task: renew, then sleep for the renewal
    period, so a renewal never starts while the previous one is in flight.
    A failed renewal is recorded in ``error``, the structure set is marked
    not editable, and the task exits. Renewal also ends quietly once the
    structure set stops being editable.

    Args:
        proknow: Root client providing the requestor and renewal buffer.
        structure_set: The draft whose lock is renewed.
    """

    def __init__(self, proknow: Any, structure_set: "StructureSetItem") -> None:
        self._proknow = proknow
        self._structure_set = structure_set
        self._lock_renewal_buffer = proknow.lock_renewal_buffer
        self._task: asyncio.Task[None] | None = None
        self.error: DraftLockRenewalError | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def has_started(self) -> bool:
        return self._task is not None

    def start(self) -> None:
        """Start renewing; a no-op if already started.

        The first renewal is issued immediately. Subsequent renewals follow
        every max(0, expires_in - lock_renewal_buffer) seconds; a zero
        period renews once.

        Raises:
            InvalidOperationError: If the structure set holds no draft lock.
        """
        if self._task is not None:
            return
        draft_lock = self._structure_set.draft_lock
        if draft_lock is None:
            raise InvalidOperationError("Item is not editable.")
        period = max(0.0, draft_lock.expires_in / 1000 - self._lock_renewal_buffer)
        logger.debug(
            "Starting draft lock renewer for structure set %s (period %.3fs)",
            self._structure_set.id,
            period,
        )
        self._task = asyncio.create_task(
            self._run(period), name=f"draft-lock-renewer-{self._structure_set.id}"
        )

    async def stop(self) -> None:
        """Stop renewing. Safe to call repeatedly or before start()."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.debug("Stopped draft lock renewer for structure set %s", self._structure_set.id)

    async def _run(self, period: float) -> None:
        while True:
            if not self._structure_set.is_editable:
                logger.debug(
                    "Structure set %s is no longer editable, stopping lock renewal",
                    self._structure_set.id,
                )
                return
            try:
                await self._renew()
            except Exception as exc:
                if not self._structure_set.is_editable:
                    logger.debug("Renewal ended after the draft was closed: %s", exc)
                    return
                structure_set_id = self._structure_set.id
                logger.exception(
                    "Failed to renew draft lock for structure set %s", structure_set_id
                )
                self.error = DraftLockRenewalError(
                    f"Failed to renew the draft lock for structure set '{structure_set_id}'. {exc}"
                )
                self.error.__cause__ = exc
                self._structure_set._on_renewal_failed(self.error)
                return
            if period <= 0:
                return
            await asyncio.sleep(period)

    async def _renew(self) -> None:
        structure_set = self._structure_set
        draft_lock = structure_set.draft_lock
        if draft_lock is None:
            raise InvalidOperationError("Item is not editable.")
        route = (
            f"/workspaces/{structure_set.workspace_id}/structuresets/"
            f"{structure_set.id}/draft/lock/{draft_lock.id}"
        )
        payload = await self._proknow.requestor.put(route)
        structure_set._set_draft_lock(DraftLock.model_validate(payload))
        logger.debug("Renewed draft lock for structure set %s", structure_set.id)
