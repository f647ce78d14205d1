from __future__ import annotations

from fastapi import Depends

from applystorm.config import Settings, get_settings
from applystorm.core.classifier import Classifier
from applystorm.core.orchestrator import ApplyOrchestrator
from applystorm.db.init import get_store
from applystorm.db.store import DocumentStore
from applystorm.llm.router import RoleSuggester
from applystorm.mail.mailer import Mailer, build_mailer


def get_app_settings() -> Settings:
    return get_settings()


def get_document_store() -> DocumentStore:
    return get_store()


def get_mailer(settings: Settings = Depends(get_app_settings)) -> Mailer:
    # Raises ConfigurationError before any job is touched; handled in create_app.
    return build_mailer(settings)


def get_classifier(settings: Settings = Depends(get_app_settings)) -> Classifier:
    return Classifier(settings=settings, suggester=RoleSuggester(settings))


def get_orchestrator(
    store: DocumentStore = Depends(get_document_store),
    mailer: Mailer = Depends(get_mailer),
    classifier: Classifier = Depends(get_classifier),
    settings: Settings = Depends(get_app_settings),
) -> ApplyOrchestrator:
    return ApplyOrchestrator(store, mailer, settings=settings, classifier=classifier)
