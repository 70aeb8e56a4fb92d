"""proknow-sdk package."""

from __future__ import annotations

import importlib
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from proknow.client import ConnectionStatus, ProKnow
    from proknow.config import ProKnowConfig, configure_logging
    from proknow.entities import DoseItem, EntitySummary, ImageSetItem, PlanItem
    from proknow.errors import (
        DraftLockRenewalError,
        EntityTypeError,
        InvalidOperationError,
        ProKnowError,
        ProKnowHttpError,
        ProKnowTimeoutError,
    )
    from proknow.structure_sets import StructureSetItem

_EXPORTS = {
    "ConnectionStatus": "client",
    "ProKnow": "client",
    "ProKnowConfig": "config",
    "configure_logging": "config",
    "DoseItem": "entities",
    "EntitySummary": "entities",
    "ImageSetItem": "entities",
    "PlanItem": "entities",
    "DraftLockRenewalError": "errors",
    "EntityTypeError": "errors",
    "InvalidOperationError": "errors",
    "ProKnowError": "errors",
    "ProKnowHttpError": "errors",
    "ProKnowTimeoutError": "errors",
    "StructureSetItem": "structure_sets",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str):
    """Lazy exports so importing one submodule does not import the whole SDK."""
    if name in _EXPORTS:
        module = importlib.import_module(f"{__name__}.{_EXPORTS[name]}")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
