from __future__ import annotations

import logging

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from fastapi.responses import JSONResponse

from applystorm.api.deps import get_app_settings, get_classifier, get_document_store, get_orchestrator
from applystorm.api.schemas import (
    ApplyRequest,
    ApplyResponse,
    ClassifyResponse,
    LabelCountResponse,
    RoleResponse,
    SweepResponse,
)
from applystorm.config import Settings
from applystorm.core.classifier import Classifier, parse_jobs
from applystorm.core.orchestrator import ApplyOrchestrator
from applystorm.core.taxonomy import display_label
from applystorm.db.store import DocumentStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


@router.post("/apply", response_model=ApplyResponse)
async def apply_now(
    payload: ApplyRequest,
    background_tasks: BackgroundTasks,
    orchestrator: ApplyOrchestrator = Depends(get_orchestrator),
) -> ApplyResponse | JSONResponse:
    if not payload.uid.strip() or not payload.title_tags:
        return JSONResponse(status_code=400, content={"ok": False, "error": "uid and titleTags required"})

    logger.info("Manual apply uid=%s titleTags=%s", payload.uid, payload.title_tags)
    result = await orchestrator.process_apply(payload.uid, payload.title_tags)
    if result.ok:
        await orchestrator.save_preferences(payload.uid.strip(), payload.title_tags)
    background_tasks.add_task(orchestrator.drain)
    return ApplyResponse(**result.model_dump())


@router.post("/apply/sweep", response_model=SweepResponse)
async def apply_sweep(
    background_tasks: BackgroundTasks,
    orchestrator: ApplyOrchestrator = Depends(get_orchestrator),
) -> SweepResponse:
    summary = await orchestrator.run_apply_for_all_users()
    background_tasks.add_task(orchestrator.drain)
    return SweepResponse(ok=True, users=summary.users, attempted=summary.attempted, partial=summary.partial)


@router.post("/classify", response_model=ClassifyResponse)
async def classify_pending(
    limit: int | None = Query(default=None, ge=1),
    store: DocumentStore = Depends(get_document_store),
    classifier: Classifier = Depends(get_classifier),
) -> ClassifyResponse:
    updated = await classifier.categorize_pending(store, limit=limit)
    return ClassifyResponse(ok=True, updated=updated)


@router.get("/labels", response_model=list[LabelCountResponse])
async def label_breakdown(
    top: int = Query(default=60, ge=1, le=500),
    store: DocumentStore = Depends(get_document_store),
    classifier: Classifier = Depends(get_classifier),
    settings: Settings = Depends(get_app_settings),
) -> list[LabelCountResponse]:
    jobs = parse_jobs(await store.get(settings.jobs_path))
    return [
        LabelCountResponse(label=label, display=display_label(label), count=count)
        for label, count in classifier.label_breakdown(jobs.values(), top=top)
    ]


@router.get("/roles", response_model=list[RoleResponse])
def list_roles(classifier: Classifier = Depends(get_classifier)) -> list[RoleResponse]:
    return [RoleResponse(label=label, display=display_label(label)) for label in classifier.taxonomy.labels()]
