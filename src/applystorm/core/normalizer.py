from __future__ import annotations

from applystorm.types import JobPosting


def normalize(job: JobPosting) -> str:
    """Searchable text of a job: title, description, category, company, lowercased."""
    parts = [job.title or "", job.description or "", job.category or "", job.company or ""]
    return " ".join(parts).strip().lower()
