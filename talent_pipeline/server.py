"""
HTTP surface: FastAPI application factory and the /api routes.

Run with: uvicorn talent_pipeline.server:create_app --factory
"""
from fastapi import FastAPI, APIRouter, HTTPException, Depends, Request, status
from fastapi.responses import JSONResponse
from starlette.middleware.cors import CORSMiddleware
import logging
import uuid
from typing import List, Optional

from talent_pipeline.aggregate import CandidateAggregateReader
from talent_pipeline.candidate_models import (
    AssessmentCreate,
    AssessmentRecord,
    BackgroundRecord,
    BackgroundUpsert,
    Candidate,
    CandidateAggregate,
    CandidateCreate,
    CandidateFilter,
    CandidateUpdate,
    DictionaryEntry,
    DictionaryEntryCreate,
    DictionaryEntryUpdate,
    EliminationResult,
    NextRoundResponse,
    OfferRecord,
    OfferUpsert,
)
from talent_pipeline.config import Settings
from talent_pipeline.enumerations import DICTIONARY_TABLE, EnumerationResolver
from talent_pipeline.errors import PipelineError
from talent_pipeline.interview_lifecycle import InterviewLifecycleManager
from talent_pipeline.interview_models import InterviewCreate, InterviewRecord, InterviewUpdate
from talent_pipeline.pipeline import CandidatePipelineCoordinator
from talent_pipeline.store import MotorStore, Store, retry_once

logger = logging.getLogger(__name__)

api_router = APIRouter(prefix="/api")


class PipelineServices:
    """Everything a request needs, built once per application"""

    def __init__(self, settings: Settings, store: Store):
        self.settings = settings
        self.store = store
        self.resolver = EnumerationResolver(store)
        self.interviews = InterviewLifecycleManager(store, self.resolver)
        self.pipeline = CandidatePipelineCoordinator(store, self.resolver, self.interviews)
        self.reader = CandidateAggregateReader(store, self.interviews)

    async def call(self, operation, *args, **kwargs):
        return await retry_once(
            operation, *args,
            backoff=self.settings.store_retry_backoff_seconds,
            **kwargs,
        )


def get_services(request: Request) -> PipelineServices:
    return request.app.state.services


# ============ CANDIDATE ROUTES ============

@api_router.post("/candidates", response_model=Candidate)
async def create_candidate(
    candidate_data: CandidateCreate,
    services: PipelineServices = Depends(get_services)
):
    """Create a candidate; status defaults to the first configured candidate status"""
    return await services.call(services.pipeline.create_candidate, candidate_data)


@api_router.get("/candidates", response_model=List[CandidateAggregate])
async def list_candidates(
    filters: CandidateFilter = Depends(),
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.reader.list_candidates, filters)


@api_router.get("/candidates/{candidate_id}", response_model=CandidateAggregate)
async def get_candidate(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.reader.get_candidate, candidate_id)


@api_router.put("/candidates/{candidate_id}", response_model=Candidate)
async def update_candidate(
    candidate_id: str,
    update_data: CandidateUpdate,
    services: PipelineServices = Depends(get_services)
):
    """Update profile fields; current_status is applied as a status transition"""
    if update_data.is_empty:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No update data provided"
        )

    async def apply():
        candidate = await services.pipeline.update_profile(candidate_id, update_data)
        if update_data.current_status:
            candidate = await services.pipeline.transition_status(candidate_id, update_data.current_status)
        return candidate

    return await services.call(apply)


@api_router.delete("/candidates/{candidate_id}")
async def delete_candidate(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    candidate = await services.call(services.pipeline.delete_candidate, candidate_id)
    return {"message": "Candidate deleted", "candidate_id": candidate.candidate_id}


@api_router.post("/candidates/{candidate_id}/rescue", response_model=Candidate)
async def rescue_candidate(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.pipeline.rescue_candidate, candidate_id)


@api_router.post("/candidates/{candidate_id}/eliminate", response_model=EliminationResult)
async def eliminate_candidate(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.pipeline.mark_eliminated, candidate_id)


@api_router.post("/candidates/{candidate_id}/assessments", response_model=AssessmentRecord)
async def add_assessment(
    candidate_id: str,
    assessment: AssessmentCreate,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.pipeline.add_assessment, candidate_id, assessment)


@api_router.post("/candidates/{candidate_id}/background", response_model=BackgroundRecord)
async def save_background(
    candidate_id: str,
    background: BackgroundUpsert,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.pipeline.upsert_background, candidate_id, background)


@api_router.post("/candidates/{candidate_id}/offer", response_model=OfferRecord)
async def save_offer(
    candidate_id: str,
    offer: OfferUpsert,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.pipeline.upsert_offer, candidate_id, offer)


# ============ INTERVIEW ROUTES ============

@api_router.get("/candidates/{candidate_id}/interviews", response_model=List[InterviewRecord])
async def list_interview_history(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.interviews.list_history, candidate_id)


@api_router.get("/candidates/{candidate_id}/interviews/schedules", response_model=List[InterviewRecord])
async def list_open_schedules(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.interviews.list_open_schedules, candidate_id)


@api_router.get("/candidates/{candidate_id}/interviews/outcomes", response_model=List[InterviewRecord])
async def list_outcomes(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    return await services.call(services.interviews.list_outcomes, candidate_id)


@api_router.get("/candidates/{candidate_id}/interviews/next-round", response_model=NextRoundResponse)
async def get_next_round(
    candidate_id: str,
    services: PipelineServices = Depends(get_services)
):
    next_round = await services.call(services.interviews.next_round, candidate_id)
    return NextRoundResponse(candidate_id=candidate_id, next_round=next_round)


@api_router.post("/candidates/{candidate_id}/interviews", response_model=InterviewRecord)
async def create_interview(
    candidate_id: str,
    interview: InterviewCreate,
    services: PipelineServices = Depends(get_services)
):
    """Schedule a round, or record an outcome when the body carries a conclusion"""
    if interview.is_outcome:
        return await services.call(
            services.interviews.record_outcome,
            candidate_id, interview.interview_id, interview.as_outcome(),
        )
    return await services.call(services.interviews.schedule_interview, candidate_id, interview.as_schedule())


@api_router.put("/candidates/{candidate_id}/interviews/{interview_id}", response_model=InterviewRecord)
async def update_interview(
    candidate_id: str,
    interview_id: str,
    interview: InterviewUpdate,
    services: PipelineServices = Depends(get_services)
):
    if interview.is_outcome:
        return await services.call(
            services.interviews.record_outcome,
            candidate_id, interview_id, interview.as_outcome(),
        )
    return await services.call(services.interviews.update_schedule, candidate_id, interview_id, interview.as_schedule())


@api_router.delete("/candidates/{candidate_id}/interviews/{interview_id}")
async def cancel_interview(
    candidate_id: str,
    interview_id: str,
    services: PipelineServices = Depends(get_services)
):
    record = await services.call(services.interviews.cancel_schedule, candidate_id, interview_id)
    return {"message": "Interview cancelled", "interview_id": record.interview_id, "round": record.round}


# ============ DATA DICTIONARY ROUTES ============

async def _get_dictionary_entry(store: Store, entry_id: str) -> dict:
    entry = await store.select_one(DICTIONARY_TABLE, {"entry_id": entry_id})
    if not entry:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Dictionary entry not found"
        )
    return entry


@api_router.get("/dict", response_model=List[DictionaryEntry])
async def list_dictionary(
    dict_type: Optional[str] = None,
    services: PipelineServices = Depends(get_services)
):
    filters = {"dict_type": dict_type} if dict_type else {}
    return await services.call(
        services.store.select_many,
        DICTIONARY_TABLE, filters,
        order_by=[("dict_type", True), ("sort_order", True)],
    )


@api_router.post("/dict", response_model=DictionaryEntry)
async def create_dictionary_entry(
    entry_data: DictionaryEntryCreate,
    services: PipelineServices = Depends(get_services)
):
    entry_doc = {"entry_id": f"dict_{uuid.uuid4().hex[:8]}", **entry_data.model_dump()}
    await services.call(services.store.insert, DICTIONARY_TABLE, entry_doc)
    services.resolver.invalidate(entry_data.dict_type)
    return entry_doc


@api_router.put("/dict/{entry_id}", response_model=DictionaryEntry)
async def update_dictionary_entry(
    entry_id: str,
    update_data: DictionaryEntryUpdate,
    services: PipelineServices = Depends(get_services)
):
    existing = await services.call(_get_dictionary_entry, services.store, entry_id)
    update_dict = update_data.model_dump(exclude_none=True)
    if not update_dict:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No update data provided"
        )

    updated = await services.call(services.store.update, DICTIONARY_TABLE, {"entry_id": entry_id}, update_dict)
    services.resolver.invalidate(existing["dict_type"])
    return updated


@api_router.delete("/dict/{entry_id}")
async def delete_dictionary_entry(
    entry_id: str,
    services: PipelineServices = Depends(get_services)
):
    existing = await services.call(_get_dictionary_entry, services.store, entry_id)
    await services.call(services.store.delete, DICTIONARY_TABLE, {"entry_id": entry_id})
    services.resolver.invalidate(existing["dict_type"])
    return {"message": "Dictionary entry deleted", "entry_id": entry_id}


@api_router.get("/health")
async def health():
    return {"status": "ok"}


# ============ APPLICATION ============

async def pipeline_error_handler(request: Request, exc: PipelineError):
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def create_app(settings: Optional[Settings] = None, store: Optional[Store] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    if store is None:
        store = MotorStore.from_url(
            settings.mongo_url,
            settings.db_name,
            timeout_seconds=settings.store_timeout_seconds,
        )

    app = FastAPI(title="Talent Pipeline")
    app.state.services = PipelineServices(settings, store)
    app.include_router(api_router)
    app.add_exception_handler(PipelineError, pipeline_error_handler)

    app.add_middleware(
        CORSMiddleware,
        allow_credentials=True,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("shutdown")
    async def close_store():
        store.close()

    return app
