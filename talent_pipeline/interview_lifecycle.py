"""
Interview lifecycle - schedules, outcomes and cancellation for a candidate's interview rounds
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Awaitable, Callable, Iterable, List, Optional, Set

from talent_pipeline.candidate_models import CANDIDATES_TABLE
from talent_pipeline.enumerations import Category, EnumerationResolver
from talent_pipeline.errors import (
    CandidateNotFound,
    CannotCancelDecidedInterview,
    DuplicateInterviewRound,
    InterviewNotFound,
    PartialPipelineUpdate,
    PipelineError,
)
from talent_pipeline.interview_models import (
    INTERVIEWS_TABLE,
    UNDETERMINED_TIME,
    Conclusion,
    InterviewOutcome,
    InterviewRecord,
    InterviewSchedule,
    InterviewStatus,
    deduplicate,
    order_history,
    order_open_schedules,
    order_outcomes,
)
from talent_pipeline.store import Store

logger = logging.getLogger(__name__)

RejectionListener = Callable[[str], Awaitable[object]]


def next_round_from(records: Iterable[InterviewRecord]) -> int:
    rounds = [r.round for r in records]
    return max(rounds) + 1 if rounds else 1


class InterviewLifecycleManager:
    def __init__(self, store: Store, resolver: EnumerationResolver):
        self.store = store
        self.resolver = resolver
        self._rejection_listeners: List[RejectionListener] = []

    def add_rejection_listener(self, listener: RejectionListener) -> None:
        """Register a coroutine called with the candidate id after a rejecting outcome"""
        self._rejection_listeners.append(listener)

    # ============ LOOKUPS ============

    async def require_candidate(self, candidate_id: str) -> dict:
        candidate = await self.store.select_one(CANDIDATES_TABLE, {"candidate_id": candidate_id})
        if not candidate:
            raise CandidateNotFound(candidate_id)
        return candidate

    async def history(self, candidate_id: str) -> List[InterviewRecord]:
        """Every stored record for the candidate, as stored (duplicates included)"""
        rows = await self.store.select_many(
            INTERVIEWS_TABLE,
            {"candidate_id": candidate_id},
            order_by=[("round", True), ("created_at", False)],
        )
        return [InterviewRecord(**row) for row in rows]

    async def _get_record(self, candidate_id: str, interview_id: str) -> InterviewRecord:
        row = await self.store.select_one(
            INTERVIEWS_TABLE,
            {"interview_id": interview_id, "candidate_id": candidate_id},
        )
        if not row:
            raise InterviewNotFound(candidate_id, interview_id)
        return InterviewRecord(**row)

    async def rejection_values(self) -> Set[str]:
        """Normalized conclusions that count as a rejection"""
        configured = await self.resolver.resolve_value(Category.INTERVIEW_CONCLUSION, Conclusion.REJECT)
        return {Conclusion.REJECT, configured}

    async def _resolve_method(self, method: Optional[str]) -> Optional[str]:
        if not method:
            return None
        return await self.resolver.resolve_value(Category.INTERVIEW_METHOD, method)

    def _check_round_free(self, candidate_id: str, round_number: int, records: Iterable[InterviewRecord], ignore_id: Optional[str] = None):
        for record in deduplicate(records):
            if record.round == round_number and (ignore_id is None or record.interview_id != ignore_id):
                raise DuplicateInterviewRound(candidate_id, round_number)

    # ============ OPERATIONS ============

    async def next_round(self, candidate_id: str) -> int:
        await self.require_candidate(candidate_id)
        return next_round_from(await self.history(candidate_id))

    async def schedule_interview(self, candidate_id: str, schedule: InterviewSchedule) -> InterviewRecord:
        """Create an open schedule; round defaults to the next free round"""
        await self.require_candidate(candidate_id)
        records = await self.history(candidate_id)

        if schedule.round is not None:
            self._check_round_free(candidate_id, schedule.round, records)
            round_number = schedule.round
        else:
            round_number = next_round_from(records)

        now = datetime.now(timezone.utc).isoformat()
        row = {
            "interview_id": f"int_{uuid.uuid4().hex[:12]}",
            "candidate_id": candidate_id,
            "round": round_number,
            "time": schedule.time or UNDETERMINED_TIME,
            "interviewer": schedule.interviewer or "",
            "method": await self._resolve_method(schedule.method),
            "location": schedule.location,
            "notes": schedule.notes,
            "feedback": "",
            "status": await self.resolver.resolve_default(Category.INTERVIEW_STATUS),
            "conclusion": None,
            "recommendation": None,
            "ratings": None,
            "tags": None,
            "created_at": now,
            "updated_at": now,
        }
        await self.store.insert(INTERVIEWS_TABLE, row)
        logger.info(f"Scheduled round {round_number} for candidate {candidate_id} ({row['interview_id']})")
        return InterviewRecord(**row)

    async def update_schedule(self, candidate_id: str, interview_id: str, schedule: InterviewSchedule) -> InterviewRecord:
        """Edit arrangement fields (time, interviewer, method, location, notes, round)"""
        await self.require_candidate(candidate_id)
        await self._get_record(candidate_id, interview_id)

        patch = schedule.model_dump(exclude_none=True)
        if "round" in patch:
            self._check_round_free(candidate_id, patch["round"], await self.history(candidate_id), ignore_id=interview_id)
        if "method" in patch:
            patch["method"] = await self._resolve_method(patch["method"])
        patch["updated_at"] = datetime.now(timezone.utc).isoformat()

        row = await self.store.update(
            INTERVIEWS_TABLE,
            {"interview_id": interview_id, "candidate_id": candidate_id},
            patch,
        )
        if row is None:
            raise InterviewNotFound(candidate_id, interview_id)
        return InterviewRecord(**row)

    async def record_outcome(
        self,
        candidate_id: str,
        interview_id: Optional[str],
        outcome: InterviewOutcome,
        cascade: bool = True,
    ) -> InterviewRecord:
        """Record an interview result.

        With an interview_id the referenced record becomes (or, when already
        decided, stays) an outcome in place. Without one a fresh outcome record
        is created at the next round. A rejecting conclusion notifies the
        rejection listeners unless cascade is False.
        """
        await self.require_candidate(candidate_id)

        fields = {
            "status": await self.resolver.resolve_value(Category.INTERVIEW_STATUS, InterviewStatus.COMPLETED),
            "conclusion": await self.resolver.resolve_value(Category.INTERVIEW_CONCLUSION, outcome.conclusion),
        }
        for optional in ("feedback", "ratings", "tags", "recommendation", "interviewer", "location", "time"):
            value = getattr(outcome, optional)
            if value is not None:
                fields[optional] = value
        if outcome.method:
            fields["method"] = await self._resolve_method(outcome.method)

        now = datetime.now(timezone.utc).isoformat()
        if interview_id:
            existing = await self._get_record(candidate_id, interview_id)
            if existing.is_outcome:
                logger.info(f"Amending decided interview {interview_id} for candidate {candidate_id}")
            if outcome.round is not None and outcome.round != existing.round:
                self._check_round_free(candidate_id, outcome.round, await self.history(candidate_id), ignore_id=interview_id)
                fields["round"] = outcome.round
            fields["updated_at"] = now
            row = await self.store.update(
                INTERVIEWS_TABLE,
                {"interview_id": interview_id, "candidate_id": candidate_id},
                fields,
            )
            if row is None:
                raise InterviewNotFound(candidate_id, interview_id)
        else:
            records = await self.history(candidate_id)
            if outcome.round is not None:
                self._check_round_free(candidate_id, outcome.round, records)
                round_number = outcome.round
            else:
                round_number = next_round_from(records)
            row = {
                "interview_id": f"int_{uuid.uuid4().hex[:12]}",
                "candidate_id": candidate_id,
                "round": round_number,
                "time": UNDETERMINED_TIME,
                "interviewer": "",
                "method": None,
                "location": None,
                "notes": None,
                "feedback": "",
                "recommendation": None,
                "ratings": None,
                "tags": None,
                "created_at": now,
                "updated_at": now,
            }
            row.update(fields)
            await self.store.insert(INTERVIEWS_TABLE, row)

        record = InterviewRecord(**row)
        logger.info(
            f"Recorded outcome '{record.conclusion}' for round {record.round} "
            f"of candidate {candidate_id} ({record.interview_id})"
        )

        if cascade and record.normalized_conclusion in await self.rejection_values():
            await self._notify_rejection(candidate_id, record)
        return record

    async def _notify_rejection(self, candidate_id: str, record: InterviewRecord):
        """Run the rejection listeners for an outcome that is already written.

        Any failure here is reported as PartialPipelineUpdate so that the
        route boundary does not retry, and re-insert, the outcome.
        """
        for listener in self._rejection_listeners:
            try:
                await listener(candidate_id)
            except PipelineError as e:
                logger.error(
                    f"Partial outcome for candidate {candidate_id}: interview {record.interview_id} "
                    f"written but rejection cascade failed ({e.kind}: {e.message})"
                )
                raise PartialPipelineUpdate(
                    f"Rejecting outcome written but candidate status was not updated ({e.kind})",
                    candidate_id=candidate_id,
                    interview_id=record.interview_id,
                ) from e

    async def cancel_schedule(self, candidate_id: str, interview_id: str) -> InterviewRecord:
        """Delete an open schedule; decided records cannot be cancelled"""
        await self.require_candidate(candidate_id)
        record = await self._get_record(candidate_id, interview_id)
        if record.is_outcome:
            raise CannotCancelDecidedInterview(interview_id)

        await self.store.delete(
            INTERVIEWS_TABLE,
            {"interview_id": interview_id, "candidate_id": candidate_id},
        )
        logger.info(f"Cancelled schedule {interview_id} (round {record.round}) for candidate {candidate_id}")
        return record

    async def list_open_schedules(self, candidate_id: str) -> List[InterviewRecord]:
        await self.require_candidate(candidate_id)
        return order_open_schedules(await self.history(candidate_id))

    async def list_outcomes(self, candidate_id: str) -> List[InterviewRecord]:
        await self.require_candidate(candidate_id)
        return order_outcomes(await self.history(candidate_id))

    async def list_history(self, candidate_id: str) -> List[InterviewRecord]:
        await self.require_candidate(candidate_id)
        return order_history(await self.history(candidate_id))
