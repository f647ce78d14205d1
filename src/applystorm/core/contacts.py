from __future__ import annotations

import re

from applystorm.types import JobPosting

EMAIL_RE = re.compile(r"[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)

# Explicit contact fields first, then free text; first seen wins on dedupe.
# Raw description keys left over after alias resolution are scanned too.
CONTACT_FIELDS = (
    "email",
    "contact_email",
    "apply_email",
    "company_email",
    "contact",
    "hr_email",
    "hr_contact",
    "recruiter_email",
)
FREE_TEXT_FIELDS = ("description", "jobDescription")

PLACEHOLDER_DOMAINS = frozenset(
    {"example.com", "example.org", "example.net", "test.com", "domain.com", "email.com"}
)
NO_REPLY_RE = re.compile(r"^(no-?reply|do-?not-?reply|donotreply|mailer-daemon)([+.@]|$)", re.IGNORECASE)

DEFAULT_CONTACT_LIMIT = 3


def extract_contacts(job: JobPosting, limit: int = DEFAULT_CONTACT_LIMIT) -> list[str]:
    found: list[str] = []
    seen: set[str] = set()
    for value in _candidate_values(job):
        for match in EMAIL_RE.findall(value):
            address = match.strip().lower()
            if address in seen or not is_deliverable(address):
                continue
            seen.add(address)
            found.append(address)
            if len(found) >= limit:
                return found
    return found


def is_deliverable(address: str) -> bool:
    local, _, domain = address.rpartition("@")
    if not local or not domain:
        return False
    if NO_REPLY_RE.match(local):
        return False
    return not any(domain == placeholder or domain.endswith("." + placeholder) for placeholder in PLACEHOLDER_DOMAINS)


def _candidate_values(job: JobPosting) -> list[str]:
    values: list[str] = []
    fields = [getattr(job, name) for name in CONTACT_FIELDS]
    fields.append(job.description)
    extra = job.model_extra or {}
    fields.extend(extra.get(name) for name in FREE_TEXT_FIELDS)
    for field in fields:
        if isinstance(field, str):
            values.append(field)
        elif isinstance(field, list):
            values.extend(item for item in field if isinstance(item, str))
    return values
