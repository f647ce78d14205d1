from __future__ import annotations

from datetime import UTC, datetime
from urllib.parse import urlencode

from bs4 import BeautifulSoup
from jinja2 import Environment, PackageLoader, select_autoescape

from applystorm.config import Settings
from applystorm.core.taxonomy import display_label
from applystorm.types import JobPosting, UserProfile

_env = Environment(
    loader=PackageLoader("applystorm", "mail/templates"),
    autoescape=select_autoescape(["html"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def application_subject(user: UserProfile, job: JobPosting) -> str:
    return f"Application — {user.display_name} for {job.title or 'position'}"


def summary_subject(settings: Settings) -> str:
    return f"Today’s {settings.brand_name} Auto-Apply Summary"


def render_application_email(settings: Settings, user: UserProfile, job: JobPosting) -> str:
    return _env.get_template("application_email.html").render(
        user=user,
        job=job,
        brand_name=settings.brand_name,
        brand_url=settings.brand_url,
        logo_url=f"{settings.brand_url}/logo.png",
    )


def render_summary_email(
    settings: Settings,
    *,
    uid: str,
    user: UserProfile,
    attempted: int,
    labels: list[str],
    top_jobs: list[JobPosting] | None = None,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(UTC)
    brand = settings.brand_url
    return _env.get_template("summary_email.html").render(
        user=user,
        attempted=attempted,
        labels=[display_label(label) for label in labels],
        top_jobs=(top_jobs or [])[:3],
        today=now.strftime("%B %d, %Y").replace(" 0", " "),
        year=now.year,
        brand_name=settings.brand_name,
        logo_url=f"{brand}/logo.png",
        dashboard_url=f"{brand}/dashboard?{urlencode({'filter': 'today', 'uid': uid})}",
        preferences_url=f"{brand}/preferences",
        notifications_url=f"{brand}/notifications",
        help_url=f"{brand}/help",
    )


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["style", "title", "head"]):
        tag.extract()
    lines = [line.strip() for line in soup.get_text("\n").splitlines() if line.strip()]
    return "\n".join(lines)
