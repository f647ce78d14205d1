from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

LEGACY_TAG_KEYS = ("titleTag", "role", "predicted", "primaryTag")
PREFERRED_TEXT_KEYS = ("jobTitle", "jobDescription", "jobCategory", "company")


def _coerce_text(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return None


def _coerce_contact(value: Any) -> Any:
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return [item for item in value if isinstance(item, str)]
    return None


class Classification(BaseModel):
    tag: str | None = None
    confidence: float | None = None
    source: str | None = None


class JobPosting(BaseModel):
    """A job record as stored under the jobs collection.

    Only the fields the classifier, matcher and contact extractor read are
    declared; everything else the ingestion pipeline writes is kept as extra.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str = ""
    title: str | None = Field(default=None, validation_alias=AliasChoices("jobTitle", "title"))
    description: str | None = Field(
        default=None, validation_alias=AliasChoices("jobDescription", "description")
    )
    category: str | None = Field(default=None, validation_alias=AliasChoices("jobCategory", "category"))
    company: str | None = Field(default=None, validation_alias=AliasChoices("company", "companyName"))
    location: str | None = None

    email: str | list[str] | None = None
    contact_email: str | list[str] | None = Field(default=None, alias="contactEmail")
    apply_email: str | list[str] | None = Field(default=None, alias="applyEmail")
    company_email: str | list[str] | None = Field(default=None, alias="companyEmail")
    contact: str | list[str] | None = None
    hr_email: str | list[str] | None = Field(default=None, alias="hrEmail")
    hr_contact: str | list[str] | None = Field(default=None, alias="hrContact")
    recruiter_email: str | list[str] | None = Field(default=None, alias="recruiterEmail")

    classification: Classification | None = None

    @model_validator(mode="before")
    @classmethod
    def drop_blank_preferred_keys(cls, data: Any) -> Any:
        # A blank first-choice key must not hide its fallback (jobTitle -> title).
        if not isinstance(data, dict):
            return data
        blank = [
            key
            for key in PREFERRED_TEXT_KEYS
            if key in data and (data[key] is None or (isinstance(data[key], str) and not data[key].strip()))
        ]
        if not blank:
            return data
        return {key: value for key, value in data.items() if key not in blank}

    @model_validator(mode="before")
    @classmethod
    def fold_legacy_ai_block(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        if isinstance(data.get("classification"), dict) and data["classification"].get("tag"):
            return data

        ai = data.get("ai") or data.get("AI") or data.get("ml")
        if not isinstance(ai, dict):
            return data
        for key in LEGACY_TAG_KEYS:
            tag = ai.get(key)
            if tag and str(tag).strip():
                return {**data, "classification": {"tag": str(tag).strip(), "source": "ai"}}
        return data

    @field_validator("id", mode="before")
    @classmethod
    def coerce_id(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("title", "description", "category", "company", "location", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> Any:
        return _coerce_text(value)

    @field_validator(
        "email",
        "contact_email",
        "apply_email",
        "company_email",
        "contact",
        "hr_email",
        "hr_contact",
        "recruiter_email",
        mode="before",
    )
    @classmethod
    def coerce_contact(cls, value: Any) -> Any:
        return _coerce_contact(value)

    @classmethod
    def from_record(cls, job_id: str, record: dict[str, Any]) -> "JobPosting":
        return cls.model_validate({**record, "id": job_id})

    @property
    def display_title(self) -> str:
        return self.title or ""


class UserProfile(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    uid: str = ""
    full_name: str = Field(default="", validation_alias=AliasChoices("fullName", "name", "full_name"))
    email: str | None = Field(default=None, validation_alias=AliasChoices("email", "contactEmail"))
    profession: str = Field(default="", validation_alias=AliasChoices("profession", "title"))
    about: str = ""
    profile_image_url: str = Field(
        default="", validation_alias=AliasChoices("profileImageUrl", "photoURL", "profile_image_url")
    )
    cv_url: str = Field(default="", validation_alias=AliasChoices("userCV", "cvURL", "cv_url"))
    selected_title_tags: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("selectedTitleTags", "selected_title_tags")
    )

    @field_validator("full_name", "profession", "about", "profile_image_url", "cv_url", mode="before")
    @classmethod
    def coerce_text(cls, value: Any) -> str:
        return _coerce_text(value) or ""

    @field_validator("selected_title_tags", mode="before")
    @classmethod
    def coerce_tags(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [str(item) for item in value if item is not None]

    @property
    def display_name(self) -> str:
        return self.full_name or self.email or "Candidate"


class ApplicationRecord(BaseModel):
    """One idempotence ledger entry for a (user, job) pair."""

    model_config = ConfigDict(populate_by_name=True)

    ts: int
    to: str
    title: str = ""
    delivered: bool = False
    message_id: str | None = Field(default=None, alias="messageId")

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class OutboundEmail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sender: str = Field(alias="from")
    to: str
    subject: str
    html: str
    text: str = ""

    def to_payload(self) -> dict[str, Any]:
        payload = self.model_dump(by_alias=True)
        if not payload["text"]:
            payload.pop("text")
        return payload


class JobOutcome(str, Enum):
    SENT = "sent"
    FAILED = "failed"
    SKIPPED_APPLIED = "skipped_applied"
    SKIPPED_NO_MATCH = "skipped_no_match"
    SKIPPED_NO_CONTACT = "skipped_no_contact"
    SKIPPED_INVALID = "skipped_invalid"

    @property
    def is_skip(self) -> bool:
        return self.value.startswith("skipped_")


class RunSummary(BaseModel):
    attempted: int = 0
    labels_used: list[str] = Field(default_factory=list)
    skipped: int = 0
    failed: int = 0
    total_to_date: int | None = None
    partial: bool = False
    outcomes: dict[str, JobOutcome] = Field(default_factory=dict)


class SweepSummary(BaseModel):
    users: int = 0
    attempted: int = 0
    partial: bool = False


class ApplyResult(BaseModel):
    ok: bool
    attempted: int = 0
    error: str | None = None
