from __future__ import annotations

import asyncio
import logging
import time
from collections import Counter
from collections.abc import Iterable
from typing import Any, Protocol

from pydantic import ValidationError as PydanticValidationError

from applystorm.config import Settings, get_settings
from applystorm.core.normalizer import normalize
from applystorm.core.taxonomy import RoleTaxonomy, get_taxonomy
from applystorm.db.store import DocumentStore
from applystorm.types import Classification, JobPosting

logger = logging.getLogger(__name__)

_BACKOFF_BASE_SEC = 1.0


class Suggester(Protocol):
    enabled: bool

    def suggest(self, title: str, description: str) -> str | None: ...


class Classifier:
    """Assigns role labels to jobs.

    A previously stored tag is trusted as-is; otherwise the taxonomy rules
    decide. `classify_and_cache` may also consult the enhancement service and
    writes the result back onto the job.
    """

    def __init__(
        self,
        taxonomy: RoleTaxonomy | None = None,
        suggester: Suggester | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or get_settings()
        self.taxonomy = taxonomy or get_taxonomy()
        self.suggester = suggester
        self._failures = 0
        self._backoff_until = 0.0

    @staticmethod
    def cached_tag(job: JobPosting) -> str | None:
        if job.classification is None or not job.classification.tag:
            return None
        tag = job.classification.tag
        return tag if tag.strip() else None

    def classify(self, job: JobPosting) -> str | None:
        tag = self.cached_tag(job)
        if tag:
            return tag
        return self.taxonomy.first_match(normalize(job))

    def classify_all(self, job: JobPosting) -> list[str]:
        tag = self.cached_tag(job)
        if tag:
            return [tag]
        return self.taxonomy.matching_labels(normalize(job))

    async def classify_and_cache(self, job_id: str, job: JobPosting, store: DocumentStore) -> str | None:
        tag = self.cached_tag(job)
        if tag:
            return tag

        suggested = await self._suggest(job)
        if suggested:
            classification = Classification(tag=suggested, source="ai")
        else:
            matches = self.taxonomy.matching_labels(normalize(job))
            if not matches:
                return None
            classification = Classification(tag=matches[0], confidence=round(1 / len(matches), 2), source="rules")

        path = f"{self.settings.jobs_path}/{job_id}/classification"
        stored = await store.get(path)
        if isinstance(stored, dict) and stored.get("tag") == classification.tag:
            logger.debug("Classification for job=%s unchanged (%s)", job_id, classification.tag)
        else:
            await store.set(path, classification.model_dump(exclude_none=True))
        job.classification = classification
        return classification.tag

    async def categorize_pending(self, store: DocumentStore, limit: int | None = None) -> int:
        """Classify and cache up to `limit` jobs from the head of the jobs collection."""
        limit = self.settings.categorize_limit if limit is None else limit
        records = await store.get(self.settings.jobs_path) or {}
        updated = 0
        for job_id, record in list(records.items())[:limit]:
            job = _parse_job(job_id, record)
            if job is None or self.cached_tag(job):
                continue
            if await self.classify_and_cache(job_id, job, store):
                updated += 1
        logger.info("Categorized %s of %s jobs", updated, min(limit, len(records)))
        return updated

    def label_breakdown(self, jobs: Iterable[JobPosting], top: int | None = None) -> list[tuple[str, int]]:
        totals: Counter[str] = Counter()
        for job in jobs:
            tag = self.cached_tag(job)
            if tag:
                totals[tag.strip().lower()] += 1
                continue
            for label in self.taxonomy.matching_labels(normalize(job)):
                totals[label] += 1
        ranked = totals.most_common()
        return ranked[:top] if top is not None else ranked

    async def _suggest(self, job: JobPosting) -> str | None:
        if self.suggester is None or not self.suggester.enabled:
            return None
        if time.monotonic() < self._backoff_until:
            return None

        try:
            label = await asyncio.wait_for(
                asyncio.to_thread(self.suggester.suggest, job.title or "", job.description or ""),
                timeout=self.settings.enhancement_timeout_sec,
            )
        except Exception as exc:
            self._failures += 1
            delay = min(_BACKOFF_BASE_SEC * 2 ** (self._failures - 1), self.settings.enhancement_backoff_max_sec)
            self._backoff_until = time.monotonic() + delay
            logger.warning(
                "Role enhancement unavailable for job=%s (%s); using rules, backing off %.1fs",
                job.id,
                exc.__class__.__name__ if isinstance(exc, TimeoutError) else exc,
                delay,
            )
            return None

        self._failures = 0
        await asyncio.sleep(self.settings.enhancement_delay_ms / 1000)
        if label and label not in self.taxonomy:
            return None
        return label


def _parse_job(job_id: str, record: Any) -> JobPosting | None:
    if not isinstance(record, dict):
        return None
    try:
        return JobPosting.from_record(job_id, record)
    except PydanticValidationError as exc:
        logger.warning("Skipping malformed job %s: %s", job_id, exc.errors()[:1])
        return None


def parse_jobs(records: dict[str, Any] | None) -> dict[str, JobPosting]:
    jobs: dict[str, JobPosting] = {}
    for job_id, record in (records or {}).items():
        job = _parse_job(str(job_id), record)
        if job is not None:
            jobs[str(job_id)] = job
    return jobs
