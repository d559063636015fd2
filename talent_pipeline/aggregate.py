"""
Read side: a candidate assembled with all of its sub-records and derived flags
"""
import asyncio
import logging
from typing import List, Optional, Set

from talent_pipeline.candidate_models import (
    ASSESSMENTS_TABLE,
    BACKGROUND_TABLE,
    CANDIDATE_JDS_TABLE,
    CANDIDATES_TABLE,
    EDUCATIONS_TABLE,
    EXPERIENCES_TABLE,
    JDS_TABLE,
    OFFERS_TABLE,
    AssessmentRecord,
    BackgroundRecord,
    CandidateAggregate,
    CandidateFilter,
    CandidateStatus,
    EducationEntry,
    ExperienceEntry,
    LinkedJD,
    OfferRecord,
)
from talent_pipeline.enumerations import Category
from talent_pipeline.interview_lifecycle import InterviewLifecycleManager
from talent_pipeline.interview_models import order_history, order_open_schedules, order_outcomes
from talent_pipeline.pipeline import had_offer, was_eliminated
from talent_pipeline.store import Store

logger = logging.getLogger(__name__)


def _contains(haystack: Optional[str], needle: str) -> bool:
    return bool(haystack) and needle.lower() in haystack.lower()


class CandidateAggregateReader:
    def __init__(self, store: Store, interviews: InterviewLifecycleManager):
        self.store = store
        self.interviews = interviews

    async def _linked_jds(self, candidate_id: str) -> List[LinkedJD]:
        links = await self.store.select_many(CANDIDATE_JDS_TABLE, {"candidate_id": candidate_id})
        if not links:
            return []

        jds = await self.store.select_many(JDS_TABLE, {"jd_id": [link["jd_id"] for link in links]})
        jds_by_id = {jd["jd_id"]: jd for jd in jds}

        linked = []
        for link in links:
            jd = jds_by_id.get(link["jd_id"])
            if jd is None:
                # link to a deleted posting
                continue
            linked.append(LinkedJD(
                jd_id=jd["jd_id"],
                title=jd.get("title") or "",
                company=jd.get("company"),
                location=jd.get("location"),
                is_recommended=bool(link.get("is_recommended")),
            ))
        return linked

    async def _assemble(self, candidate: dict, rejection_values: Optional[Set[str]] = None) -> CandidateAggregate:
        candidate_id = candidate["candidate_id"]
        by_position = [("sort_order", True)]
        records, experiences, educations, assessments, background, offer, linked_jds = await asyncio.gather(
            self.interviews.history(candidate_id),
            self.store.select_many(EXPERIENCES_TABLE, {"candidate_id": candidate_id}, order_by=by_position),
            self.store.select_many(EDUCATIONS_TABLE, {"candidate_id": candidate_id}, order_by=by_position),
            self.store.select_many(ASSESSMENTS_TABLE, {"candidate_id": candidate_id}, order_by=[("date", False)]),
            self.store.select_one(BACKGROUND_TABLE, {"candidate_id": candidate_id}),
            self.store.select_one(OFFERS_TABLE, {"candidate_id": candidate_id}),
            self._linked_jds(candidate_id),
        )
        if rejection_values is None:
            rejection_values = await self.interviews.rejection_values()

        return CandidateAggregate(
            **candidate,
            interview_history=order_history(records),
            open_schedules=order_open_schedules(records),
            outcomes=order_outcomes(records),
            experience=[ExperienceEntry(**row) for row in experiences],
            education=[EducationEntry(**row) for row in educations],
            assessment_history=[AssessmentRecord(**row) for row in assessments],
            background_check=BackgroundRecord(**background) if background else None,
            offer_info=OfferRecord(**offer) if offer else None,
            linked_jds=linked_jds,
            recommended_jds=[jd for jd in linked_jds if jd.is_recommended],
            was_eliminated=was_eliminated(records, rejection_values),
            had_offer=had_offer(offer),
        )

    async def get_candidate(self, candidate_id: str) -> CandidateAggregate:
        candidate = await self.interviews.require_candidate(candidate_id)
        return await self._assemble(candidate)

    async def list_candidates(self, filters: CandidateFilter) -> List[CandidateAggregate]:
        """List candidates, most recently updated first.

        Rejected candidates are hidden unless a status filter is given.
        company and region match against the linked job postings.
        """
        resolver = self.interviews.resolver
        query = {}
        if filters.status and filters.status.strip():
            query["current_status"] = await resolver.resolve_value(Category.CANDIDATE_STATUS, filters.status.strip())

        rows = await self.store.select_many(CANDIDATES_TABLE, query, order_by=[("updated_at", False)])

        if not query:
            rejected = await resolver.resolve_value(Category.CANDIDATE_STATUS, CandidateStatus.REJECTED)
            rows = [row for row in rows if row.get("current_status") != rejected]

        search = (filters.search or "").strip()
        if search:
            rows = [
                row for row in rows
                if any(_contains(row.get(field), search) for field in ("name", "applied_position", "phone", "email"))
            ]

        position_type = (filters.position_type or "").strip()
        if position_type:
            rows = [row for row in rows if _contains(row.get("applied_position"), position_type)]

        rejection_values = await self.interviews.rejection_values()
        aggregates = await asyncio.gather(*(self._assemble(row, rejection_values) for row in rows))

        company = (filters.company or "").strip()
        if company:
            aggregates = [a for a in aggregates if any(_contains(jd.company, company) for jd in a.linked_jds)]
        region = (filters.region or "").strip()
        if region:
            aggregates = [a for a in aggregates if any(_contains(jd.location, region) for jd in a.linked_jds)]

        logger.info(f"Listed {len(aggregates)} candidates")
        return list(aggregates)
