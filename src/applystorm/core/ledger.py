from __future__ import annotations

import logging

from pydantic import ValidationError as PydanticValidationError

from applystorm.config import Settings, get_settings
from applystorm.db.store import DocumentStore
from applystorm.types import ApplicationRecord

logger = logging.getLogger(__name__)


class ApplicationLedger:
    """Per-user record of jobs already applied to, stored at `<ledger_path>/<uid>/<job_id>`.

    An entry's existence is what matters: any value under a job id blocks
    further sends for that pair.
    """

    def __init__(self, store: DocumentStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or get_settings()

    def _path(self, uid: str, job_id: str | None = None) -> str:
        base = f"{self.settings.ledger_path}/{uid}"
        return f"{base}/{job_id}" if job_id is not None else base

    async def load(self, uid: str) -> dict[str, ApplicationRecord]:
        raw = await self.store.get(self._path(uid)) or {}
        if not isinstance(raw, dict):
            return {}

        entries: dict[str, ApplicationRecord] = {}
        for job_id, value in raw.items():
            if not value:
                continue
            try:
                entries[job_id] = ApplicationRecord.model_validate(value)
            except PydanticValidationError:
                # Legacy or hand-written marker; presence alone still counts.
                entries[job_id] = ApplicationRecord(ts=0, to="")
        return entries

    async def claim(self, uid: str, job_id: str, record: ApplicationRecord) -> bool:
        """Create the entry only if none exists; False means another run got there first."""
        return await self.store.create(self._path(uid, job_id), record.to_document())

    async def confirm(self, uid: str, job_id: str, message_id: str | None) -> None:
        marker: dict[str, object] = {"delivered": True}
        if message_id:
            marker["messageId"] = message_id
        await self.store.update(self._path(uid, job_id), marker)

    async def release(self, uid: str, job_id: str) -> None:
        logger.debug("Releasing ledger claim uid=%s job=%s", uid, job_id)
        await self.store.set(self._path(uid, job_id), None)

    async def count(self, uid: str) -> int:
        return len(await self.load(uid))
