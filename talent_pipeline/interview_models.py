"""
Interview records - legacy-compatible models, normalization and ordering helpers

Rows in interview_records were written by more than one code path over time:
some carry a `conclusion`, older ones only a `recommendation`, and some legacy
rows have no interview_id at all. Everything that inspects a row goes through
InterviewRecord and normalize_conclusion so the field-presence rules live in
one place.
"""

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from typing import Dict, Hashable, Iterable, List, Optional
from datetime import datetime, timezone

INTERVIEWS_TABLE = "interview_records"

# Sentinel for an interview whose time has not been arranged yet
UNDETERMINED_TIME = "undetermined"


class InterviewStatus(str):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Conclusion(str):
    PASS = "pass"
    REJECT = "reject"
    UNDECIDED = "undecided"


class Recommendation(str):
    ADVANCE = "advance"
    REJECT = "reject"
    UNDECIDED = "undecided"


# Labels written by the earlier frontend
CONCLUSION_ALIASES = {
    "pass": Conclusion.PASS,
    "通过": Conclusion.PASS,
    "reject": Conclusion.REJECT,
    "淘汰": Conclusion.REJECT,
    "undecided": Conclusion.UNDECIDED,
    "待定": Conclusion.UNDECIDED,
}

RECOMMENDATION_ALIASES = {
    "advance": Recommendation.ADVANCE,
    "推进": Recommendation.ADVANCE,
    "reject": Recommendation.REJECT,
    "淘汰": Recommendation.REJECT,
    "undecided": Recommendation.UNDECIDED,
    "待定": Recommendation.UNDECIDED,
}


# ============ NORMALIZATION ============

def normalize_recommendation(recommendation: Optional[str]) -> Optional[str]:
    if not recommendation:
        return None
    return RECOMMENDATION_ALIASES.get(recommendation.strip())


def is_decisive_recommendation(recommendation: Optional[str]) -> bool:
    return normalize_recommendation(recommendation) in (Recommendation.ADVANCE, Recommendation.REJECT)


def normalize_conclusion(conclusion: Optional[str], recommendation: Optional[str] = None) -> Optional[str]:
    """Unified conclusion of a record, or None while it is undecided.

    A stored conclusion wins unless it is the undecided sentinel. Otherwise a
    decisive legacy recommendation is mapped (advance -> pass, reject ->
    reject). Conclusions outside the known aliases are returned unchanged so
    operator-configured labels survive. Nothing is written back.
    """
    if conclusion and conclusion.strip():
        value = conclusion.strip()
        symbolic = CONCLUSION_ALIASES.get(value, value)
        if symbolic != Conclusion.UNDECIDED:
            return symbolic

    legacy = normalize_recommendation(recommendation)
    if legacy == Recommendation.ADVANCE:
        return Conclusion.PASS
    if legacy == Recommendation.REJECT:
        return Conclusion.REJECT
    return None


# ============ TIME HANDLING ============

def is_undetermined_time(value: Optional[str]) -> bool:
    if not value or not value.strip():
        return True
    value = value.strip()
    # legacy placeholder text starts with 待定
    return value == UNDETERMINED_TIME or value.startswith("待定")


def parse_time(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-like time ("2024-05-14 10:00", "2024-05-14T10:00:00Z"); naive UTC"""
    if is_undetermined_time(value):
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


# ============ RECORD MODEL ============

class InterviewRecord(BaseModel):
    """One interview_records row, as stored"""
    model_config = ConfigDict(extra="ignore")

    interview_id: Optional[str] = None
    candidate_id: str
    round: int = Field(default=1, ge=1)
    time: str = UNDETERMINED_TIME
    interviewer: Optional[str] = None
    method: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    feedback: Optional[str] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None
    recommendation: Optional[str] = None
    ratings: Optional[Dict[str, float]] = None
    tags: Optional[List[str]] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    @field_validator('time', mode='before')
    @classmethod
    def default_time(cls, time):
        if time is None or (isinstance(time, str) and not time.strip()):
            return UNDETERMINED_TIME
        return time

    @field_validator('round', mode='before')
    @classmethod
    def default_round(cls, round):
        # legacy rows may carry no round at all
        if round is None or round == 0 or round == "":
            return 1
        return round

    @computed_field
    @property
    def normalized_conclusion(self) -> Optional[str]:
        return normalize_conclusion(self.conclusion, self.recommendation)

    @computed_field
    @property
    def is_outcome(self) -> bool:
        return self.normalized_conclusion is not None

    @property
    def is_open_schedule(self) -> bool:
        return not self.is_outcome

    @property
    def identity_key(self) -> Hashable:
        if self.interview_id:
            return self.interview_id
        return (self.round, self.time)


# ============ REQUEST MODELS ============

class InterviewSchedule(BaseModel):
    """Arrange an interview round"""
    time: Optional[str] = None
    interviewer: Optional[str] = None
    method: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    round: Optional[int] = Field(default=None, ge=1)


class InterviewOutcome(BaseModel):
    """Record the result of an interview round"""
    conclusion: str = Field(min_length=1)
    ratings: Optional[Dict[str, float]] = None
    tags: Optional[List[str]] = None
    feedback: Optional[str] = None
    recommendation: Optional[str] = None
    # used only when no open schedule is referenced
    round: Optional[int] = Field(default=None, ge=1)
    time: Optional[str] = None
    interviewer: Optional[str] = None
    method: Optional[str] = None
    location: Optional[str] = None


class InterviewUpdate(BaseModel):
    """PUT body: a schedule edit, or an outcome entry when conclusion is present"""
    time: Optional[str] = None
    interviewer: Optional[str] = None
    method: Optional[str] = None
    location: Optional[str] = None
    notes: Optional[str] = None
    round: Optional[int] = Field(default=None, ge=1)
    conclusion: Optional[str] = None
    recommendation: Optional[str] = None
    ratings: Optional[Dict[str, float]] = None
    tags: Optional[List[str]] = None
    feedback: Optional[str] = None

    @property
    def is_outcome(self) -> bool:
        return bool(self.conclusion and self.conclusion.strip())

    def as_schedule(self) -> InterviewSchedule:
        return InterviewSchedule(**self.model_dump(include=set(InterviewSchedule.model_fields)))

    def as_outcome(self) -> InterviewOutcome:
        return InterviewOutcome(**self.model_dump(include=set(InterviewOutcome.model_fields)))


class InterviewCreate(InterviewUpdate):
    """POST body: selects schedule vs outcome by the presence of conclusion"""
    interview_id: Optional[str] = None


# ============ LISTING HELPERS ============

def deduplicate(records: Iterable[InterviewRecord]) -> List[InterviewRecord]:
    """Keep one record per identity (interview_id, else round + time); the last one wins"""
    kept: Dict[Hashable, InterviewRecord] = {}
    for record in records:
        kept[record.identity_key] = record
    return list(kept.values())


def schedule_sort_key(record: InterviewRecord):
    """Time ascending; unparseable times after parsed ones; undetermined last"""
    parsed = parse_time(record.time)
    return (
        is_undetermined_time(record.time),
        parsed is None,
        parsed or datetime.min,
        record.time,
    )


def outcome_sort_key(record: InterviewRecord):
    """Round ascending, then time descending within a round"""
    parsed = parse_time(record.time)
    return (
        record.round,
        parsed is None,
        -parsed.replace(tzinfo=timezone.utc).timestamp() if parsed else 0.0,
    )


def order_open_schedules(records: Iterable[InterviewRecord]) -> List[InterviewRecord]:
    return sorted((r for r in records if r.is_open_schedule), key=schedule_sort_key)


def order_outcomes(records: Iterable[InterviewRecord]) -> List[InterviewRecord]:
    return sorted(deduplicate(r for r in records if r.is_outcome), key=outcome_sort_key)


def order_history(records: Iterable[InterviewRecord]) -> List[InterviewRecord]:
    return sorted(deduplicate(records), key=lambda r: (r.round, r.is_open_schedule))
