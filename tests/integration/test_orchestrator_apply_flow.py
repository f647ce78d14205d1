from __future__ import annotations

import asyncio
import time

import pytest

from applystorm.core.classifier import Classifier, parse_jobs
from applystorm.core.orchestrator import ApplyOrchestrator
from applystorm.core.runtime import UserRunLocks
from applystorm.core.taxonomy import RoleTaxonomy
from applystorm.db.store import MemoryDocumentStore
from applystorm.errors import ValidationError
from applystorm.types import JobOutcome

JOBS = {
    "j1": {"title": "Electrician", "email": "jobs@acme.bh", "company": "Acme"},
    "j2": {"title": "Electrician", "description": "Walk-in interviews only"},
    "j3": {"title": "Barista", "description": "Send CV to cafe@beans.bh"},
    "j4": {"title": "Auto Electrical Fitter", "description": "Contact hr@garage.bh"},
}


def _seed(**extra) -> MemoryDocumentStore:
    tree = {
        "expats_jobs": JOBS,
        "users": {
            "u1": {
                "info": {"fullName": "Ali Hassan", "email": "ali@acme.bh", "profession": "Electrician"},
                "selectedTitleTags": ["electrician"],
            },
        },
    }
    tree.update(extra)
    return MemoryDocumentStore(tree)


def _orchestrator(store, mailer, settings) -> ApplyOrchestrator:
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)
    return ApplyOrchestrator(store, mailer, settings=settings, classifier=classifier, locks=UserRunLocks())


def test_run_apply_sends_once_per_job_and_records_ledger(settings, mailer) -> None:
    store = _seed()
    orchestrator = _orchestrator(store, mailer, settings)
    jobs = parse_jobs(JOBS)

    first = asyncio.run(orchestrator.run_apply("u1", ["electrician"], jobs))
    second = asyncio.run(orchestrator.run_apply("u1", ["electrician"], jobs))

    assert first.attempted == 1
    assert first.outcomes == {
        "j1": JobOutcome.SENT,
        "j2": JobOutcome.SKIPPED_NO_CONTACT,
        "j3": JobOutcome.SKIPPED_NO_MATCH,
        "j4": JobOutcome.SKIPPED_NO_MATCH,
    }
    assert second.attempted == 0
    assert second.outcomes["j1"] is JobOutcome.SKIPPED_APPLIED
    assert mailer.sent_to() == ["jobs@acme.bh"]

    entry = store.snapshot()["applyLog"]["u1"]["j1"]
    assert entry["to"] == "jobs@acme.bh"
    assert entry["title"] == "Electrician"
    assert entry["delivered"] is True
    assert entry["messageId"] == "msg_1"


def test_preexisting_ledger_entry_is_skipped(settings, mailer) -> None:
    store = _seed(applyLog={"u1": {"j1": {"ts": 1, "to": "jobs@acme.bh", "title": "Electrician"}}})
    orchestrator = _orchestrator(store, mailer, settings)

    summary = asyncio.run(orchestrator.run_apply("u1", ["electrician", "auto electrician"], parse_jobs(JOBS)))

    assert summary.attempted == 1
    assert summary.outcomes["j1"] is JobOutcome.SKIPPED_APPLIED
    assert summary.outcomes["j4"] is JobOutcome.SENT
    assert summary.total_to_date == 2
    assert mailer.sent_to() == ["hr@garage.bh"]


def test_delivery_failure_leaves_job_retryable(settings, mailer) -> None:
    store = _seed()
    mailer.failing = {"jobs@acme.bh"}
    orchestrator = _orchestrator(store, mailer, settings)

    failed = asyncio.run(orchestrator.run_apply("u1", ["electrician"], parse_jobs(JOBS)))

    assert failed.attempted == 0
    assert failed.failed == 1
    assert failed.outcomes["j1"] is JobOutcome.FAILED
    assert "applyLog" not in store.snapshot()

    mailer.failing = set()
    retried = asyncio.run(orchestrator.run_apply("u1", ["electrician"], parse_jobs(JOBS)))
    assert retried.attempted == 1


def test_empty_label_set_sends_nothing(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    summary = asyncio.run(orchestrator.run_apply("u1", [], parse_jobs(JOBS)))

    assert summary.attempted == 0
    assert all(outcome is JobOutcome.SKIPPED_NO_MATCH for outcome in summary.outcomes.values())
    assert mailer.messages == []


def test_expired_deadline_returns_partial_summary(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    summary = asyncio.run(
        orchestrator.run_apply("u1", ["electrician"], parse_jobs(JOBS), deadline=time.monotonic() - 1)
    )

    assert summary.partial is True
    assert summary.outcomes == {}
    assert mailer.messages == []


def test_malformed_raw_job_is_skipped(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    summary = asyncio.run(
        orchestrator.run_apply("u1", ["electrician"], {"bad": {"title": "Electrician", "classification": "oops"}})
    )

    assert summary.outcomes == {"bad": JobOutcome.SKIPPED_INVALID}


def test_process_apply_sends_application_and_summary(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    result = asyncio.run(orchestrator.process_apply("u1", ["Electrician", "cook", "chef", "baker"]))

    assert result.ok is True
    assert result.attempted == 1
    application, summary = mailer.messages
    assert application.to == "jobs@acme.bh"
    assert application.sender == settings.from_email
    assert application.subject == "Application — Ali Hassan for Electrician"
    assert application.text
    assert summary.to == "ali@acme.bh"
    assert summary.subject == "Today’s So Jobless BH Auto-Apply Summary"
    assert "Electrician, Cook, Chef" in summary.html


def test_detached_summary_is_sent_after_drain(settings, mailer) -> None:
    settings.detach_summary_email = True
    orchestrator = _orchestrator(_seed(), mailer, settings)

    async def _run():
        result = await orchestrator.process_apply("u1", ["electrician"])
        await orchestrator.drain()
        return result

    assert asyncio.run(_run()).attempted == 1
    assert mailer.sent_to() == ["jobs@acme.bh", "ali@acme.bh"]


def test_summary_failure_does_not_fail_run(settings, mailer) -> None:
    mailer.failing = {"ali@acme.bh"}
    orchestrator = _orchestrator(_seed(), mailer, settings)

    result = asyncio.run(orchestrator.process_apply("u1", ["electrician"]))

    assert result.ok is True
    assert result.attempted == 1


def test_process_apply_validates_input(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.process_apply("", ["electrician"]))
    with pytest.raises(ValidationError):
        asyncio.run(orchestrator.process_apply("u1", [" "]))


def test_process_apply_for_unknown_user(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    result = asyncio.run(orchestrator.process_apply("ghost", ["electrician"]))

    assert result.ok is False
    assert result.error == "user profile not found"
    assert mailer.messages == []


def test_concurrent_triggers_for_same_user_send_once(settings, mailer) -> None:
    orchestrator = _orchestrator(_seed(), mailer, settings)

    async def _run():
        return await asyncio.gather(
            orchestrator.process_apply("u1", ["electrician"]),
            orchestrator.process_apply("u1", ["electrician"]),
            orchestrator.run_apply_for_all_users(),
        )

    first, second, sweep = asyncio.run(_run())

    assert first.attempted + second.attempted + sweep.attempted == 1
    assert mailer.sent_to().count("jobs@acme.bh") == 1


def test_load_user_reads_flat_record_and_saves_preferences(settings, mailer) -> None:
    store = MemoryDocumentStore({"users": {"u2": {"name": "Sara", "contactEmail": "sara@acme.bh"}}})
    orchestrator = _orchestrator(store, mailer, settings)

    async def _run():
        user = await orchestrator.load_user("u2")
        saved = await orchestrator.save_preferences("u2", ["Cook", "cook", "chef", "baker", "nurse"])
        return user, saved

    user, saved = asyncio.run(_run())
    assert user.full_name == "Sara"
    assert user.email == "sara@acme.bh"
    assert saved == ["cook", "chef", "baker"]
    assert store.snapshot()["users"]["u2"]["selectedTitleTags"] == ["cook", "chef", "baker"]
