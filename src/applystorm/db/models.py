from __future__ import annotations

from typing import Any

from sqlalchemy import JSON, String
from sqlalchemy.orm import Mapped, mapped_column

from applystorm.db.base import Base, TimestampMixin


class Document(TimestampMixin, Base):
    """One top-level node of the key-path tree (`users`, `expats_jobs`, `applyLog`, ...)."""

    __tablename__ = "documents"

    key: Mapped[str] = mapped_column(String(255), primary_key=True)
    value: Mapped[Any] = mapped_column(JSON, nullable=True)
