from __future__ import annotations

import logging
from typing import Any

from applystorm.db.store import DocumentStore

logger = logging.getLogger(__name__)


async def import_export(store: DocumentStore, payload: dict[str, Any], *, replace: bool = False) -> dict[str, int]:
    """Load a realtime-database JSON export into the store.

    Top-level keys are merged child by child unless `replace` is set, in which
    case each top-level node is overwritten.
    """
    if not isinstance(payload, dict):
        raise ValueError("export payload must be a JSON object")

    counts: dict[str, int] = {}
    for key, value in payload.items():
        if replace or not isinstance(value, dict):
            await store.set(key, value)
        else:
            await store.update(key, {str(child): child_value for child, child_value in value.items()})
        counts[key] = len(value) if isinstance(value, dict) else 1
        logger.info("Imported %s (%s entries)", key, counts[key])
    return counts
