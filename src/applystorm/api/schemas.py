from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ApplyRequest(BaseModel):
    """Body of a manual apply trigger.

    Loosely typed input never fails validation; unusable values become empty
    and the route answers with its own 400 body.
    """

    model_config = ConfigDict(populate_by_name=True)

    uid: str = ""
    title_tags: list[str] = Field(default_factory=list, alias="titleTags")

    @field_validator("uid", mode="before")
    @classmethod
    def coerce_uid(cls, value: Any) -> str:
        if isinstance(value, bool) or not isinstance(value, (str, int, float)):
            return ""
        return str(value)

    @field_validator("title_tags", mode="before")
    @classmethod
    def coerce_title_tags(cls, value: Any) -> list[str]:
        if not isinstance(value, list):
            return []
        return [str(item) for item in value if isinstance(item, (str, int, float))]


class ApplyResponse(BaseModel):
    ok: bool
    attempted: int = 0
    error: str | None = None


class SweepResponse(BaseModel):
    ok: bool
    users: int = 0
    attempted: int = 0
    partial: bool = False


class ClassifyResponse(BaseModel):
    ok: bool
    updated: int = 0


class LabelCountResponse(BaseModel):
    label: str
    display: str
    count: int


class RoleResponse(BaseModel):
    label: str
    display: str
