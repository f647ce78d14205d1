from __future__ import annotations

import logging

from applystorm.config import Settings, get_settings
from applystorm.core.taxonomy import RoleTaxonomy, get_taxonomy
from applystorm.errors import EnhancementUnavailable
from applystorm.llm.prompts import ROLE_SUGGESTION_PROMPT
from applystorm.llm.providers import ProviderPool

logger = logging.getLogger(__name__)

_MAX_DESCRIPTION_CHARS = 4000


class RoleSuggester:
    """Asks an LLM for one taxonomy label for a job.

    Returns None when no provider is configured or the model declines;
    raises EnhancementUnavailable only when every configured provider failed.
    """

    def __init__(self, settings: Settings | None = None, taxonomy: RoleTaxonomy | None = None):
        self.settings = settings or get_settings()
        self.taxonomy = taxonomy or get_taxonomy()
        self.pool = ProviderPool(self.settings)

    @property
    def enabled(self) -> bool:
        return bool(self.pool.ordered())

    def suggest(self, title: str, description: str) -> str | None:
        providers = self.pool.ordered()
        if not providers:
            return None

        prompt = ROLE_SUGGESTION_PROMPT.format(
            labels=", ".join(self.taxonomy.labels()),
            title=title or "",
            description=(description or "")[:_MAX_DESCRIPTION_CHARS],
        )

        errors: list[str] = []
        for provider in providers:
            try:
                completion = provider.complete_text(prompt=prompt)
            except Exception as exc:
                logger.warning("Role suggestion failed provider=%s error=%s", provider.config.name, exc)
                errors.append(f"{provider.config.name}: {exc}")
                continue
            return self._parse_label(completion.content)

        raise EnhancementUnavailable("; ".join(errors))

    def _parse_label(self, content: str) -> str | None:
        role = content.strip().strip("\"'`.").strip().lower()
        if not role or role == "other":
            return None
        if role not in self.taxonomy:
            logger.info("Ignoring role suggestion outside taxonomy: %r", role)
            return None
        return role
