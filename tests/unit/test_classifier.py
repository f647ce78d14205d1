from __future__ import annotations

import asyncio
import time

from applystorm.core.classifier import Classifier, parse_jobs
from applystorm.core.taxonomy import RoleTaxonomy
from applystorm.db.store import MemoryDocumentStore
from applystorm.types import JobPosting


class FakeSuggester:
    def __init__(self, answer=None, *, error: Exception | None = None, delay: float = 0.0):
        self.enabled = True
        self.answer = answer
        self.error = error
        self.delay = delay
        self.calls = 0

    def suggest(self, title: str, description: str) -> str | None:
        self.calls += 1
        if self.delay:
            time.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.answer


def _job(job_id: str = "j1", **record) -> JobPosting:
    return JobPosting.from_record(job_id, record)


def test_cached_tag_takes_precedence_over_rules(settings) -> None:
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)
    job = _job(title="Electrician", classification={"tag": "plumber", "source": "ai"})

    assert classifier.classify(job) == "plumber"
    assert classifier.classify_all(job) == ["plumber"]


def test_legacy_ai_block_is_read_as_cached_tag(settings) -> None:
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)
    job = _job(title="Electrician", ai={"titleTag": "foreman"})

    assert classifier.classify(job) == "foreman"


def test_rules_decide_when_no_tag_is_cached(settings) -> None:
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)

    assert classifier.classify(_job(title="Commis chef")) == "kitchen helper"
    assert classifier.classify_all(_job(title="Commis chef")) == ["kitchen helper", "chef"]
    assert classifier.classify(_job(title="Astronaut")) is None


def test_classify_and_cache_stores_rule_result(settings) -> None:
    store = MemoryDocumentStore({"expats_jobs": {"j1": {"title": "Commis chef"}}})
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)
    job = _job(title="Commis chef")

    tag = asyncio.run(classifier.classify_and_cache("j1", job, store))

    assert tag == "kitchen helper"
    assert job.classification.source == "rules"
    stored = asyncio.run(store.get("expats_jobs/j1/classification"))
    assert stored == {"tag": "kitchen helper", "confidence": 0.5, "source": "rules"}


def test_classify_and_cache_prefers_suggestion_inside_taxonomy(settings) -> None:
    store = MemoryDocumentStore()
    suggester = FakeSuggester("barista")
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), suggester=suggester, settings=settings)

    tag = asyncio.run(classifier.classify_and_cache("j1", _job(title="Coffee crew"), store))

    assert tag == "barista"
    assert asyncio.run(store.get("expats_jobs/j1/classification")) == {"tag": "barista", "source": "ai"}


def test_suggestion_outside_taxonomy_falls_back_to_rules(settings) -> None:
    store = MemoryDocumentStore()
    classifier = Classifier(
        taxonomy=RoleTaxonomy.default(), suggester=FakeSuggester("astronaut"), settings=settings
    )

    tag = asyncio.run(classifier.classify_and_cache("j1", _job(title="Electrician"), store))

    assert tag == "electrician"


def test_cached_job_never_calls_suggester(settings) -> None:
    suggester = FakeSuggester("barista")
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), suggester=suggester, settings=settings)
    job = _job(title="Electrician", classification={"tag": "electrician"})

    tag = asyncio.run(classifier.classify_and_cache("j1", job, MemoryDocumentStore()))

    assert tag == "electrician"
    assert suggester.calls == 0


def test_suggester_failure_backs_off_and_uses_rules(settings) -> None:
    suggester = FakeSuggester(error=RuntimeError("upstream 503"))
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), suggester=suggester, settings=settings)
    store = MemoryDocumentStore()

    async def _run():
        first = await classifier.classify_and_cache("j1", _job(title="Electrician"), store)
        second = await classifier.classify_and_cache("j2", _job(title="Plumber"), store)
        return first, second

    assert asyncio.run(_run()) == ("electrician", "plumber")
    # The second job fell inside the backoff window.
    assert suggester.calls == 1


def test_slow_suggester_times_out(settings) -> None:
    settings.enhancement_timeout_sec = 0.05
    suggester = FakeSuggester("barista", delay=0.3)
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), suggester=suggester, settings=settings)

    tag = asyncio.run(classifier.classify_and_cache("j1", _job(title="Electrician"), MemoryDocumentStore()))

    assert tag == "electrician"


def test_categorize_pending_respects_limit_and_skips_cached(settings) -> None:
    store = MemoryDocumentStore(
        {
            "expats_jobs": {
                "j1": {"title": "Electrician"},
                "j2": {"title": "Barista", "classification": {"tag": "barista"}},
                "j3": {"title": "Astronaut"},
                "j4": {"title": "Plumber"},
            }
        }
    )
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)

    updated = asyncio.run(classifier.categorize_pending(store, limit=3))

    assert updated == 1
    jobs = asyncio.run(store.get("expats_jobs"))
    assert jobs["j1"]["classification"]["tag"] == "electrician"
    assert "classification" not in jobs["j3"]
    assert "classification" not in jobs["j4"]


def test_label_breakdown_counts_tags_and_rules(settings) -> None:
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)
    jobs = parse_jobs(
        {
            "j1": {"title": "Electrician"},
            "j2": {"title": "Electrician helper"},
            "j3": {"title": "Team member", "classification": {"tag": "Barista"}},
            "j4": "not a job",
        }
    )

    assert list(jobs) == ["j1", "j2", "j3"]
    assert classifier.label_breakdown(jobs.values()) == [("electrician", 2), ("barista", 1)]
    assert classifier.label_breakdown(jobs.values(), top=1) == [("electrician", 2)]


def test_custom_taxonomy_classifies_title(settings) -> None:
    classifier = Classifier(taxonomy=RoleTaxonomy([("electrician", [r"electrician"])]), settings=settings)

    assert classifier.classify(_job(title="Senior Electrician Needed")) == "electrician"


def test_cached_tag_is_returned_as_stored(settings) -> None:
    job = _job(title="Team member", classification={"tag": " Barista "})

    assert Classifier.cached_tag(job) == " Barista "
    assert Classifier.cached_tag(_job(classification={"tag": "   "})) is None


class CountingStore(MemoryDocumentStore):
    def __init__(self, initial=None):
        super().__init__(initial)
        self.writes: list[str] = []

    async def set(self, path, value) -> None:
        self.writes.append(path)
        await super().set(path, value)


def test_classify_and_cache_skips_write_when_stored_tag_is_equal(settings) -> None:
    store = CountingStore({"expats_jobs": {"j1": {"title": "Electrician", "classification": {"tag": "electrician"}}}})
    classifier = Classifier(taxonomy=RoleTaxonomy.default(), settings=settings)
    stale_job = _job(title="Electrician")

    tag = asyncio.run(classifier.classify_and_cache("j1", stale_job, store))

    assert tag == "electrician"
    assert store.writes == []
    assert stale_job.classification.tag == "electrician"

    asyncio.run(classifier.classify_and_cache("j2", _job(title="Plumber"), store))
    assert store.writes == ["expats_jobs/j2/classification"]
