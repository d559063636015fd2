"""
Interview lifecycle tests
Tests for round assignment, scheduling, outcome recording and cancellation
"""
import pytest

from talent_pipeline.enumerations import DICTIONARY_TABLE, Category
from talent_pipeline.errors import (
    CandidateNotFound,
    CannotCancelDecidedInterview,
    DuplicateInterviewRound,
    InterviewNotFound,
    MissingEnumerationDefault,
    PartialPipelineUpdate,
    StoreUnavailable,
)
from talent_pipeline.interview_models import (
    INTERVIEWS_TABLE,
    UNDETERMINED_TIME,
    InterviewOutcome,
    InterviewSchedule,
)


class TestNextRound:
    async def test_first_round_is_one(self, interviews, make_candidate):
        candidate = make_candidate()
        assert await interviews.next_round(candidate["candidate_id"]) == 1

    async def test_max_plus_one_with_gaps(self, interviews, store, make_candidate):
        candidate = make_candidate()
        store.seed(INTERVIEWS_TABLE, [
            {"interview_id": "int_a", "candidate_id": candidate["candidate_id"], "round": 1, "conclusion": "pass"},
            {"interview_id": "int_b", "candidate_id": candidate["candidate_id"], "round": 4},
        ])
        assert await interviews.next_round(candidate["candidate_id"]) == 5

    async def test_unknown_candidate(self, interviews):
        with pytest.raises(CandidateNotFound):
            await interviews.next_round("cand_missing")


class TestScheduleInterview:
    async def test_defaults(self, interviews, make_candidate):
        candidate = make_candidate(status="interview")

        record = await interviews.schedule_interview(candidate["candidate_id"], InterviewSchedule())

        assert record.round == 1
        assert record.time == UNDETERMINED_TIME
        assert record.status == "scheduled"
        assert record.conclusion is None
        assert record.recommendation is None
        assert record.interview_id.startswith("int_")

    async def test_method_resolved_through_dictionary(self, interviews, store, make_candidate):
        store.seed(DICTIONARY_TABLE, [{
            "entry_id": "dict_video_cn", "dict_type": Category.INTERVIEW_METHOD,
            "name": "视频面试", "code": "zoom", "sort_order": 0,
        }])
        candidate = make_candidate()

        record = await interviews.schedule_interview(candidate["candidate_id"], InterviewSchedule(method="zoom"))

        assert record.method == "视频面试"

    async def test_explicit_round_must_be_free(self, interviews, make_candidate):
        candidate = make_candidate()
        await interviews.schedule_interview(candidate["candidate_id"], InterviewSchedule(round=2))

        with pytest.raises(DuplicateInterviewRound) as exc_info:
            await interviews.schedule_interview(candidate["candidate_id"], InterviewSchedule(round=2))
        assert exc_info.value.status_code == 409

    async def test_missing_status_default(self, interviews, store, make_candidate):
        store.tables[DICTIONARY_TABLE] = [
            row for row in store.tables[DICTIONARY_TABLE]
            if row["dict_type"] != Category.INTERVIEW_STATUS
        ]
        candidate = make_candidate()

        with pytest.raises(MissingEnumerationDefault):
            await interviews.schedule_interview(candidate["candidate_id"], InterviewSchedule())
        assert store.rows(INTERVIEWS_TABLE) == []

    async def test_unknown_candidate(self, interviews):
        with pytest.raises(CandidateNotFound):
            await interviews.schedule_interview("cand_missing", InterviewSchedule())

    async def test_two_rounds_ordered_by_time(self, interviews, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        first = await interviews.schedule_interview(candidate_id, InterviewSchedule(time="2024-05-20 09:00"))
        second = await interviews.schedule_interview(candidate_id, InterviewSchedule(time="2024-05-15 14:00"))

        assert (first.round, second.round) == (1, 2)
        assert await interviews.next_round(candidate_id) == 3
        schedules = await interviews.list_open_schedules(candidate_id)
        assert [s.interview_id for s in schedules] == [second.interview_id, first.interview_id]


class TestUpdateSchedule:
    async def test_edits_arrangement(self, interviews, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        scheduled = await interviews.schedule_interview(candidate_id, InterviewSchedule())

        updated = await interviews.update_schedule(
            candidate_id, scheduled.interview_id,
            InterviewSchedule(time="2024-06-01 15:00", interviewer="王经理"),
        )

        assert updated.time == "2024-06-01 15:00"
        assert updated.interviewer == "王经理"
        assert updated.status == "scheduled"
        assert updated.round == scheduled.round

    async def test_unknown_interview(self, interviews, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        with pytest.raises(InterviewNotFound):
            await interviews.update_schedule(candidate_id, "int_missing", InterviewSchedule(time="2024-06-01 15:00"))


class TestRecordOutcome:
    async def test_outcome_on_open_schedule_updates_in_place(self, interviews, store, make_candidate):
        candidate_id = make_candidate(status="interview")["candidate_id"]
        scheduled = await interviews.schedule_interview(
            candidate_id, InterviewSchedule(time="2024-05-14 10:00", interviewer="李总"),
        )

        outcome = await interviews.record_outcome(
            candidate_id, scheduled.interview_id,
            InterviewOutcome(conclusion="pass", ratings={"communication": 4.5}, feedback="solid"),
        )

        assert outcome.interview_id == scheduled.interview_id
        assert outcome.status == "completed"
        assert outcome.conclusion == "pass"
        assert outcome.interviewer == "李总"
        assert await interviews.list_open_schedules(candidate_id) == []
        outcomes = await interviews.list_outcomes(candidate_id)
        assert [(o.round, o.normalized_conclusion) for o in outcomes] == [(1, "pass")]
        assert len(store.rows(INTERVIEWS_TABLE)) == 1

    async def test_outcome_without_reference_creates_next_round(self, interviews, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        await interviews.schedule_interview(candidate_id, InterviewSchedule())

        outcome = await interviews.record_outcome(candidate_id, None, InterviewOutcome(conclusion="pass"))

        assert outcome.round == 2
        assert len(await interviews.list_history(candidate_id)) == 2

    async def test_decided_record_is_amended(self, interviews, store, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        first = await interviews.record_outcome(candidate_id, None, InterviewOutcome(conclusion="undecided"))
        decided = await interviews.record_outcome(candidate_id, first.interview_id, InterviewOutcome(conclusion="pass"))
        amended = await interviews.record_outcome(
            candidate_id, decided.interview_id, InterviewOutcome(conclusion="pass", feedback="revised"),
        )

        assert amended.interview_id == first.interview_id
        assert amended.feedback == "revised"
        assert len(store.rows(INTERVIEWS_TABLE)) == 1

    async def test_unknown_reference(self, interviews, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        with pytest.raises(InterviewNotFound):
            await interviews.record_outcome(candidate_id, "int_missing", InterviewOutcome(conclusion="pass"))

    async def test_rejection_notifies_listeners(self, interviews, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        notified = []

        async def listener(cid):
            notified.append(cid)

        interviews.add_rejection_listener(listener)
        await interviews.record_outcome(candidate_id, None, InterviewOutcome(conclusion="pass"))
        await interviews.record_outcome(candidate_id, None, InterviewOutcome(conclusion="reject"), cascade=False)
        assert notified == []

        await interviews.record_outcome(candidate_id, None, InterviewOutcome(conclusion="reject"))
        assert notified == [candidate_id]

    async def test_failed_cascade_reports_written_outcome(self, interviews, store, make_candidate):
        """The outcome row stays written and the error names it"""
        candidate_id = make_candidate()["candidate_id"]

        async def listener(cid):
            raise StoreUnavailable("Store update on 'candidates' failed", table="candidates", operation="update")

        interviews.add_rejection_listener(listener)
        with pytest.raises(PartialPipelineUpdate) as exc_info:
            await interviews.record_outcome(candidate_id, None, InterviewOutcome(conclusion="reject"))

        rows = store.rows(INTERVIEWS_TABLE, candidate_id=candidate_id)
        assert len(rows) == 1
        assert exc_info.value.context["interview_id"] == rows[0]["interview_id"]

    async def test_legacy_rows_without_round(self, interviews, store, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        store.seed(INTERVIEWS_TABLE, [
            {"candidate_id": candidate_id, "round": None, "conclusion": "pass", "time": "2024-01-02 10:00"},
            {"candidate_id": candidate_id, "conclusion": "pass", "time": "2024-01-03 10:00"},
        ])

        history = await interviews.list_history(candidate_id)

        assert [r.round for r in history] == [1, 1]
        assert await interviews.next_round(candidate_id) == 2


class TestCancelSchedule:
    async def test_cancel_open_schedule(self, interviews, store, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        scheduled = await interviews.schedule_interview(candidate_id, InterviewSchedule())

        cancelled = await interviews.cancel_schedule(candidate_id, scheduled.interview_id)

        assert cancelled.interview_id == scheduled.interview_id
        assert store.rows(INTERVIEWS_TABLE) == []

    async def test_cannot_cancel_decided(self, interviews, store, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        scheduled = await interviews.schedule_interview(candidate_id, InterviewSchedule())
        await interviews.record_outcome(candidate_id, scheduled.interview_id, InterviewOutcome(conclusion="pass"))

        with pytest.raises(CannotCancelDecidedInterview):
            await interviews.cancel_schedule(candidate_id, scheduled.interview_id)
        assert len(store.rows(INTERVIEWS_TABLE)) == 1

    async def test_cannot_cancel_legacy_decisive_recommendation(self, interviews, store, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        store.seed(INTERVIEWS_TABLE, [{
            "interview_id": "int_legacy", "candidate_id": candidate_id,
            "round": 1, "time": "待定", "recommendation": "推进",
        }])

        with pytest.raises(CannotCancelDecidedInterview):
            await interviews.cancel_schedule(candidate_id, "int_legacy")

    async def test_undecided_record_can_be_cancelled(self, interviews, store, make_candidate):
        candidate_id = make_candidate()["candidate_id"]
        store.seed(INTERVIEWS_TABLE, [{
            "interview_id": "int_legacy", "candidate_id": candidate_id,
            "round": 1, "recommendation": "待定",
        }])

        await interviews.cancel_schedule(candidate_id, "int_legacy")
        assert store.rows(INTERVIEWS_TABLE) == []
