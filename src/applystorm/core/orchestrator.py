from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from applystorm.config import Settings, get_settings
from applystorm.core.classifier import Classifier, parse_jobs
from applystorm.core.contacts import extract_contacts
from applystorm.core.ledger import ApplicationLedger
from applystorm.core.matcher import Matcher, clamp_labels
from applystorm.core.runtime import UserRunLocks, get_run_locks
from applystorm.db.store import DocumentStore
from applystorm.errors import DeliveryFailure, NotFoundError, ValidationError
from applystorm.mail.mailer import Mailer
from applystorm.mail.render import (
    application_subject,
    html_to_text,
    render_application_email,
    render_summary_email,
    summary_subject,
)
from applystorm.types import (
    ApplicationRecord,
    ApplyResult,
    JobOutcome,
    JobPosting,
    OutboundEmail,
    RunSummary,
    SweepSummary,
    UserProfile,
)

logger = logging.getLogger(__name__)


class ApplyOrchestrator:
    """Sends application emails for one user, or for every opted-in user.

    Jobs are handled one at a time in collection order. A ledger entry is
    claimed before each send and released again if the send fails, so only
    accepted sends block future runs.
    """

    def __init__(
        self,
        store: DocumentStore,
        mailer: Mailer,
        *,
        settings: Settings | None = None,
        classifier: Classifier | None = None,
        ledger: ApplicationLedger | None = None,
        locks: UserRunLocks | None = None,
    ):
        self.store = store
        self.mailer = mailer
        self.settings = settings or get_settings()
        self.classifier = classifier or Classifier(settings=self.settings)
        self.matcher = Matcher(self.classifier)
        self.ledger = ledger or ApplicationLedger(store, self.settings)
        self.locks = locks or get_run_locks()
        self._background: set[asyncio.Task[None]] = set()

    async def run_apply(
        self,
        uid: str,
        wanted: Iterable[str],
        jobs: Mapping[str, JobPosting | dict[str, Any]],
        *,
        user: UserProfile | None = None,
        deadline: float | None = None,
    ) -> RunSummary:
        labels = clamp_labels(wanted, self.settings.max_selected_roles)
        summary = RunSummary(labels_used=labels)
        applied = await self.ledger.load(uid)
        profile = user or UserProfile(uid=uid)
        sent_jobs: list[JobPosting] = []

        for job_id, job in jobs.items():
            if deadline is not None and time.monotonic() >= deadline:
                summary.partial = True
                logger.warning("Run deadline reached uid=%s after %s jobs", uid, len(summary.outcomes))
                break

            outcome = await self._process_job(uid, str(job_id), job, labels, applied, profile)
            summary.outcomes[str(job_id)] = outcome
            if outcome is JobOutcome.SENT:
                summary.attempted += 1
                sent_jobs.append(job if isinstance(job, JobPosting) else JobPosting.from_record(str(job_id), job))
                await asyncio.sleep(self.settings.send_delay_ms / 1000)
            elif outcome is JobOutcome.FAILED:
                summary.failed += 1
            else:
                summary.skipped += 1

        summary.total_to_date = len(applied)
        logger.info(
            "Apply run uid=%s labels=%s attempted=%s failed=%s skipped=%s partial=%s",
            uid,
            labels,
            summary.attempted,
            summary.failed,
            summary.skipped,
            summary.partial,
        )

        if profile.email and summary.attempted > 0:
            await self._dispatch_summary(uid, profile, summary, sent_jobs)
        return summary

    async def process_apply(self, uid: str, labels: Iterable[str] | None) -> ApplyResult:
        """Manual trigger: validate input, load the user and jobs, run under the user's lock."""
        uid = (uid or "").strip()
        if not uid:
            raise ValidationError("uid required")
        wanted = clamp_labels(labels, self.settings.max_selected_roles)
        if not wanted:
            raise ValidationError("titleTags required")

        try:
            user = await self.load_user(uid)
        except NotFoundError as exc:
            logger.info("Nothing to apply for uid=%s: %s", uid, exc)
            return ApplyResult(ok=False, attempted=0, error="user profile not found")

        jobs = parse_jobs(await self.store.get(self.settings.jobs_path))
        async with self.locks.for_user(uid):
            summary = await self.run_apply(
                uid,
                wanted,
                jobs,
                user=user,
                deadline=time.monotonic() + self.settings.run_deadline_sec,
            )
        return ApplyResult(ok=True, attempted=summary.attempted)

    async def run_apply_for_all_users(self) -> SweepSummary:
        summary = SweepSummary()
        users = await self.store.get(self.settings.users_path)
        if not isinstance(users, dict) or not users:
            logger.info("Sweep found no users")
            return summary

        jobs = parse_jobs(await self.store.get(self.settings.jobs_path))
        sweep_deadline = time.monotonic() + self.settings.sweep_deadline_sec

        for uid, record in users.items():
            if not isinstance(record, dict):
                continue
            labels = clamp_labels(_selected_tags(record), self.settings.max_selected_roles)
            if not labels:
                continue
            if time.monotonic() >= sweep_deadline:
                summary.partial = True
                logger.warning("Sweep deadline reached after %s users", summary.users)
                break

            run_deadline = min(sweep_deadline, time.monotonic() + self.settings.run_deadline_sec)
            try:
                user = profile_from_record(uid, record)
                async with self.locks.for_user(uid):
                    result = await self.run_apply(uid, labels, jobs, user=user, deadline=run_deadline)
            except Exception:
                logger.exception("Sweep run failed uid=%s", uid)
                continue

            summary.users += 1
            summary.attempted += result.attempted
            await asyncio.sleep(self.settings.user_delay_ms / 1000)

        logger.info(
            "Sweep complete users=%s attempted=%s partial=%s",
            summary.users,
            summary.attempted,
            summary.partial,
        )
        return summary

    async def load_user(self, uid: str) -> UserProfile:
        base = f"{self.settings.users_path}/{uid}"
        info = await self.store.get(f"{base}/info")
        if isinstance(info, dict) and info:
            return _validate_profile(uid, info)

        record = await self.store.get(base)
        if isinstance(record, dict) and record:
            return profile_from_record(uid, record)
        raise NotFoundError(f"user {uid} not found")

    async def save_preferences(self, uid: str, labels: Iterable[str]) -> list[str]:
        clamped = clamp_labels(labels, self.settings.max_selected_roles)
        await self.store.set(f"{self.settings.users_path}/{uid}/selectedTitleTags", clamped)
        return clamped

    async def drain(self) -> None:
        """Wait for detached summary emails still in flight."""
        if self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    async def _process_job(
        self,
        uid: str,
        job_id: str,
        job: JobPosting | dict[str, Any],
        labels: list[str],
        applied: dict[str, ApplicationRecord],
        user: UserProfile,
    ) -> JobOutcome:
        if job_id in applied:
            return JobOutcome.SKIPPED_APPLIED

        if not isinstance(job, JobPosting):
            try:
                job = JobPosting.from_record(job_id, job)
            except PydanticValidationError:
                logger.warning("Skipping malformed job %s", job_id)
                return JobOutcome.SKIPPED_INVALID

        if not self.matcher.matches(job, labels):
            return JobOutcome.SKIPPED_NO_MATCH

        contacts = extract_contacts(job, self.settings.max_contacts)
        if not contacts:
            return JobOutcome.SKIPPED_NO_CONTACT

        to = contacts[0]
        record = ApplicationRecord(ts=_now_ms(), to=to, title=job.title or "")
        if not await self.ledger.claim(uid, job_id, record):
            logger.info("Job %s already claimed for uid=%s by another run", job_id, uid)
            applied[job_id] = record
            return JobOutcome.SKIPPED_APPLIED

        html = render_application_email(self.settings, user, job)
        message = OutboundEmail(
            sender=self.settings.from_email,
            to=to,
            subject=application_subject(user, job),
            html=html,
            text=html_to_text(html),
        )
        try:
            message_id = await self.mailer.send(message)
        except DeliveryFailure as exc:
            logger.error("Email send failed job=%s uid=%s: %s", job_id, uid, exc)
            await self.ledger.release(uid, job_id)
            return JobOutcome.FAILED
        except Exception:
            logger.exception("Email send failed job=%s uid=%s", job_id, uid)
            await self.ledger.release(uid, job_id)
            return JobOutcome.FAILED

        applied[job_id] = record
        await self.ledger.confirm(uid, job_id, message_id)
        return JobOutcome.SENT

    async def _dispatch_summary(
        self,
        uid: str,
        user: UserProfile,
        summary: RunSummary,
        sent_jobs: list[JobPosting],
    ) -> None:
        html = render_summary_email(
            self.settings,
            uid=uid,
            user=user,
            attempted=summary.attempted,
            labels=summary.labels_used,
            top_jobs=sent_jobs,
        )
        message = OutboundEmail(
            sender=self.settings.from_email,
            to=str(user.email),
            subject=summary_subject(self.settings),
            html=html,
            text=html_to_text(html),
        )
        if not self.settings.detach_summary_email:
            await self._send_summary(uid, message)
            return

        task = asyncio.create_task(self._send_summary(uid, message))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_summary(self, uid: str, message: OutboundEmail) -> None:
        try:
            await self.mailer.send(message)
        except Exception as exc:
            logger.warning("Summary email failed uid=%s: %s", uid, exc)


def profile_from_record(uid: str, record: dict[str, Any]) -> UserProfile:
    info = record.get("info")
    data = {**info, "selectedTitleTags": _selected_tags(record)} if isinstance(info, dict) else record
    return _validate_profile(uid, data)


def _validate_profile(uid: str, data: dict[str, Any]) -> UserProfile:
    try:
        return UserProfile.model_validate({**data, "uid": uid})
    except PydanticValidationError as exc:
        raise NotFoundError(f"user {uid} has an unreadable profile") from exc


def _selected_tags(record: dict[str, Any]) -> list[Any]:
    tags = record.get("selectedTitleTags")
    return tags if isinstance(tags, list) else []


def _now_ms() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)
