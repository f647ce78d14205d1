from applystorm.core.contacts import extract_contacts, is_deliverable
from applystorm.types import JobPosting


def test_explicit_field_and_description_are_merged_and_deduped() -> None:
    job = JobPosting.from_record(
        "j1",
        {"email": "A@x.com", "description": "Send CV to a@x.com or hr@x.com"},
    )

    assert extract_contacts(job) == ["a@x.com", "hr@x.com"]


def test_contact_list_fields_are_read() -> None:
    job = JobPosting.from_record("j1", {"contactEmail": ["jobs@acme.bh", None, 7], "hrEmail": "people@acme.bh"})

    assert extract_contacts(job) == ["jobs@acme.bh", "people@acme.bh"]


def test_placeholder_and_no_reply_addresses_are_dropped() -> None:
    job = JobPosting.from_record(
        "j1",
        {
            "description": (
                "noreply@acme.bh, no-reply@acme.bh, do-not-reply@acme.bh, "
                "someone@example.com, me@mail.test.com, real@acme.bh"
            )
        },
    )

    assert extract_contacts(job) == ["real@acme.bh"]


def test_contacts_are_capped() -> None:
    job = JobPosting.from_record(
        "j1",
        {"description": "a@acme.bh b@acme.bh c@acme.bh d@acme.bh"},
    )

    assert extract_contacts(job) == ["a@acme.bh", "b@acme.bh", "c@acme.bh"]
    assert extract_contacts(job, limit=1) == ["a@acme.bh"]


def test_job_without_contacts_yields_empty_list() -> None:
    job = JobPosting.from_record("j1", {"title": "Electrician", "description": "Apply in person"})

    assert extract_contacts(job) == []


def test_is_deliverable() -> None:
    assert is_deliverable("careers@acme.bh")
    assert not is_deliverable("noreply+alerts@acme.bh")
    assert not is_deliverable("x@sub.example.org")
    assert not is_deliverable("missing-at-sign")


def test_duplicate_and_placeholder_addresses_collapse_to_one() -> None:
    job = JobPosting.from_record("j1", {"email": "a@x.com", "description": "contact a@x.com or fake@example.com"})

    assert extract_contacts(job) == ["a@x.com"]
