"""
Candidate pipeline coordination: status transitions, rejection cascade,
rescue and elimination, plus the candidate's child records.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Set

from pydantic import BaseModel

from talent_pipeline.candidate_models import (
    ASSESSMENTS_TABLE,
    BACKGROUND_TABLE,
    CANDIDATE_JDS_TABLE,
    CANDIDATES_TABLE,
    EDUCATIONS_TABLE,
    EXPERIENCES_TABLE,
    OFFERS_TABLE,
    PIPELINE_EVENTS_TABLE,
    AssessmentCreate,
    AssessmentRecord,
    BackgroundRecord,
    BackgroundUpsert,
    Candidate,
    CandidateCreate,
    CandidateStatus,
    CandidateUpdate,
    EliminationResult,
    JDLinkInput,
    OfferRecord,
    OfferUpsert,
)
from talent_pipeline.enumerations import Category, EnumerationResolver
from talent_pipeline.errors import CandidateNotFound, PartialPipelineUpdate, PipelineError
from talent_pipeline.interview_lifecycle import InterviewLifecycleManager
from talent_pipeline.interview_models import (
    INTERVIEWS_TABLE,
    Conclusion,
    InterviewOutcome,
    InterviewRecord,
    Recommendation,
)
from talent_pipeline.store import Store

logger = logging.getLogger(__name__)

ELIMINATION_INTERVIEWER = "system"
ELIMINATION_FEEDBACK = "marked eliminated"


class PipelineAction(str):
    CREATED = "CREATED"
    STATUS_CHANGED = "STATUS_CHANGED"
    REJECTED = "REJECTED"
    RESCUED = "RESCUED"
    DELETED = "DELETED"


CHILD_TABLES = (
    INTERVIEWS_TABLE,
    ASSESSMENTS_TABLE,
    BACKGROUND_TABLE,
    OFFERS_TABLE,
    CANDIDATE_JDS_TABLE,
    EXPERIENCES_TABLE,
    EDUCATIONS_TABLE,
)

# CandidateCreate fields stored outside the candidates row
CREATE_RELATION_FIELDS = {"current_status", "jd_ids", "experience", "education"}


# ============ DERIVED FLAGS ============

def was_eliminated(records: Iterable[InterviewRecord], rejection_values: Set[str]) -> bool:
    """True once any interview record normalizes to a rejection; later passes do not clear it"""
    return any(record.normalized_conclusion in rejection_values for record in records)


def had_offer(offer: Optional[dict]) -> bool:
    return offer is not None


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class CandidatePipelineCoordinator:
    def __init__(self, store: Store, resolver: EnumerationResolver, interviews: InterviewLifecycleManager):
        self.store = store
        self.resolver = resolver
        self.interviews = interviews
        interviews.add_rejection_listener(self.mark_interview_rejected)

    async def log_pipeline_event(
        self,
        candidate_id: str,
        action_type: str,
        previous_status: Optional[str],
        new_status: Optional[str],
        exceptional: bool = False,
        metadata: Optional[dict] = None,
    ):
        """Append a status transition to the pipeline_events collection"""
        event = {
            "event_id": f"evt_{uuid.uuid4().hex[:12]}",
            "timestamp": _now(),
            "candidate_id": candidate_id,
            "action_type": action_type,
            "previous_status": previous_status,
            "new_status": new_status,
            "exceptional": exceptional,
            "metadata": metadata or {},
        }
        await self.store.insert(PIPELINE_EVENTS_TABLE, event)

    async def _set_status(self, candidate: dict, new_status: str, action_type: str, exceptional: bool = False) -> Candidate:
        candidate_id = candidate["candidate_id"]
        previous = candidate.get("current_status")
        row = await self.store.update(
            CANDIDATES_TABLE,
            {"candidate_id": candidate_id},
            {"current_status": new_status, "updated_at": _now()},
        )
        if row is None:
            raise CandidateNotFound(candidate_id)

        await self.log_pipeline_event(candidate_id, action_type, previous, new_status, exceptional=exceptional)
        logger.info(f"Candidate {candidate_id} status '{previous}' -> '{new_status}' ({action_type})")
        return Candidate(**row)

    # ============ STATUS TRANSITIONS ============

    async def mark_interview_rejected(self, candidate_id: str) -> Candidate:
        """Move the candidate to rejected; a no-op when already rejected"""
        candidate = await self.interviews.require_candidate(candidate_id)
        rejected = await self.resolver.resolve_value(Category.CANDIDATE_STATUS, CandidateStatus.REJECTED)
        if candidate.get("current_status") == rejected:
            return Candidate(**candidate)
        return await self._set_status(candidate, rejected, PipelineAction.REJECTED)

    async def rescue_candidate(self, candidate_id: str) -> Candidate:
        """Send a candidate back to new, whatever their current status"""
        candidate = await self.interviews.require_candidate(candidate_id)
        new = await self.resolver.resolve_value(Category.CANDIDATE_STATUS, CandidateStatus.NEW)
        logger.warning(
            f"Rescue override: candidate {candidate_id} moved from "
            f"'{candidate.get('current_status')}' back to '{new}'"
        )
        return await self._set_status(candidate, new, PipelineAction.RESCUED, exceptional=True)

    async def mark_eliminated(self, candidate_id: str) -> EliminationResult:
        """Write a system rejection at the next round, then reject the candidate.

        The two writes are not atomic. If the status update fails after the
        record was written, PartialPipelineUpdate names the orphaned record.
        """
        await self.interviews.require_candidate(candidate_id)
        outcome = InterviewOutcome(
            conclusion=Conclusion.REJECT,
            recommendation=Recommendation.REJECT,
            interviewer=ELIMINATION_INTERVIEWER,
            feedback=ELIMINATION_FEEDBACK,
            time=datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M"),
        )
        record = await self.interviews.record_outcome(candidate_id, None, outcome, cascade=False)

        try:
            candidate = await self.mark_interview_rejected(candidate_id)
        except PipelineError as e:
            logger.error(
                f"Partial elimination for candidate {candidate_id}: interview {record.interview_id} "
                f"written but status update failed ({e.kind}: {e.message})"
            )
            raise PartialPipelineUpdate(
                f"Elimination record written but candidate status was not updated ({e.kind})",
                candidate_id=candidate_id,
                interview_id=record.interview_id,
            ) from e
        return EliminationResult(candidate=candidate, interview=record)

    async def transition_status(self, candidate_id: str, status: str) -> Candidate:
        candidate = await self.interviews.require_candidate(candidate_id)
        target = await self.resolver.resolve_value(Category.CANDIDATE_STATUS, status)
        rejected = await self.resolver.resolve_value(Category.CANDIDATE_STATUS, CandidateStatus.REJECTED)
        new = await self.resolver.resolve_value(Category.CANDIDATE_STATUS, CandidateStatus.NEW)
        current = candidate.get("current_status")

        if target == rejected:
            return await self.mark_interview_rejected(candidate_id)
        if target == current:
            return Candidate(**candidate)
        # moving back to new from anywhere is an override
        if target == new:
            return await self.rescue_candidate(candidate_id)
        return await self._set_status(candidate, target, PipelineAction.STATUS_CHANGED)

    # ============ PROFILE ============

    async def create_candidate(self, data: CandidateCreate) -> Candidate:
        if data.current_status:
            current_status = await self.resolver.resolve_value(Category.CANDIDATE_STATUS, data.current_status)
        else:
            current_status = await self.resolver.resolve_default(Category.CANDIDATE_STATUS)

        now = _now()
        candidate_id = f"cand_{uuid.uuid4().hex[:8]}"
        candidate_doc = {
            "candidate_id": candidate_id,
            **data.model_dump(exclude=CREATE_RELATION_FIELDS),
            "current_status": current_status,
            "created_at": now,
            "updated_at": now,
        }
        await self.store.insert(CANDIDATES_TABLE, candidate_doc)

        for jd_id in data.jd_ids:
            await self.store.insert(CANDIDATE_JDS_TABLE, {
                "candidate_id": candidate_id,
                "jd_id": jd_id,
                "is_recommended": False,
            })
        if data.experience:
            await self._replace_entries(EXPERIENCES_TABLE, candidate_id, data.experience)
        if data.education:
            await self._replace_entries(EDUCATIONS_TABLE, candidate_id, data.education)

        await self.log_pipeline_event(candidate_id, PipelineAction.CREATED, None, current_status)
        logger.info(f"Created candidate {candidate_id} with status '{current_status}'")
        return Candidate(**candidate_doc)

    async def update_profile(self, candidate_id: str, update: CandidateUpdate) -> Candidate:
        """Apply profile fields, experience/education lists and job posting links.

        current_status is ignored on this path.
        """
        candidate = await self.interviews.require_candidate(candidate_id)
        fields = update.profile_fields()
        if fields:
            fields["updated_at"] = _now()
            candidate = await self.store.update(CANDIDATES_TABLE, {"candidate_id": candidate_id}, fields)
            if candidate is None:
                raise CandidateNotFound(candidate_id)

        if update.experience is not None:
            await self._replace_entries(EXPERIENCES_TABLE, candidate_id, update.experience)
        if update.education is not None:
            await self._replace_entries(EDUCATIONS_TABLE, candidate_id, update.education)
        if update.linked_jd_ids is not None or update.recommended_jd_ids is not None:
            await self.update_jd_links(candidate_id, update.linked_jd_ids, update.recommended_jd_ids)
        return Candidate(**candidate)

    async def _replace_entries(self, table: str, candidate_id: str, entries: List[BaseModel]):
        await self.store.delete(table, {"candidate_id": candidate_id})
        for position, entry in enumerate(entries):
            await self.store.insert(table, {
                "candidate_id": candidate_id,
                **entry.model_dump(),
                "sort_order": position,
            })

    async def update_jd_links(
        self,
        candidate_id: str,
        linked: Optional[List[JDLinkInput]] = None,
        recommended_jd_ids: Optional[List[str]] = None,
    ):
        """Rewrite job posting links.

        recommended_jd_ids replaces the recommended links only; linked, applied
        after it, replaces every link of the candidate.
        """
        if recommended_jd_ids is not None:
            await self.store.delete(CANDIDATE_JDS_TABLE, {"candidate_id": candidate_id, "is_recommended": True})
            for jd_id in recommended_jd_ids:
                if not jd_id:
                    continue
                await self.store.upsert(
                    CANDIDATE_JDS_TABLE,
                    {"candidate_id": candidate_id, "jd_id": jd_id, "is_recommended": True},
                    ("candidate_id", "jd_id"),
                )

        if linked is not None:
            await self.store.delete(CANDIDATE_JDS_TABLE, {"candidate_id": candidate_id})
            for link in linked:
                await self.store.insert(CANDIDATE_JDS_TABLE, {
                    "candidate_id": candidate_id,
                    "jd_id": link.jd_id,
                    "is_recommended": link.is_recommended,
                })
        logger.info(f"Updated job posting links for candidate {candidate_id}")

    async def delete_candidate(self, candidate_id: str) -> Candidate:
        """Remove a candidate and every row that hangs off it.

        Child rows go first and the candidate row last, so a retry after a
        failure part-way through still finds the candidate and finishes.
        The pipeline_events trail is kept.
        """
        candidate = await self.interviews.require_candidate(candidate_id)
        for table in CHILD_TABLES:
            await self.store.delete(table, {"candidate_id": candidate_id})
        await self.store.delete(CANDIDATES_TABLE, {"candidate_id": candidate_id})

        await self.log_pipeline_event(candidate_id, PipelineAction.DELETED, candidate.get("current_status"), None)
        logger.info(f"Deleted candidate {candidate_id}")
        return Candidate(**candidate)

    # ============ CHILD RECORDS ============

    async def _resolve_status(self, category: str, status: Optional[str]) -> str:
        if status:
            return await self.resolver.resolve_value(category, status)
        return await self.resolver.resolve_default(category)

    async def add_assessment(self, candidate_id: str, data: AssessmentCreate) -> AssessmentRecord:
        await self.interviews.require_candidate(candidate_id)
        row = {
            "assessment_id": f"asmt_{uuid.uuid4().hex[:8]}",
            "candidate_id": candidate_id,
            **data.model_dump(),
            "status": await self._resolve_status(Category.ASSESSMENT_STATUS, data.status),
            "created_at": _now(),
        }
        await self.store.insert(ASSESSMENTS_TABLE, row)
        logger.info(f"Added {data.type} assessment for candidate {candidate_id}")
        return AssessmentRecord(**row)

    async def _upsert_child(self, table: str, category: str, candidate_id: str, data: BaseModel) -> dict:
        await self.interviews.require_candidate(candidate_id)
        row = {"candidate_id": candidate_id, **data.model_dump(exclude_none=True)}

        if data.status:
            row["status"] = await self.resolver.resolve_value(category, data.status)
        else:
            existing = await self.store.select_one(table, {"candidate_id": candidate_id})
            if not existing or not existing.get("status"):
                row["status"] = await self.resolver.resolve_default(category)
        row["updated_at"] = _now()

        saved = await self.store.upsert(table, row, "candidate_id")
        logger.info(f"Saved {table} row for candidate {candidate_id} (status '{saved.get('status')}')")
        return saved

    async def upsert_background(self, candidate_id: str, data: BackgroundUpsert) -> BackgroundRecord:
        row = await self._upsert_child(BACKGROUND_TABLE, Category.BACKGROUND_STATUS, candidate_id, data)
        return BackgroundRecord(**row)

    async def upsert_offer(self, candidate_id: str, data: OfferUpsert) -> OfferRecord:
        row = await self._upsert_child(OFFERS_TABLE, Category.OFFER_STATUS, candidate_id, data)
        return OfferRecord(**row)
