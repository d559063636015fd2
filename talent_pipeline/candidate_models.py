from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator
from typing import List, Optional

from talent_pipeline.interview_models import InterviewRecord

CANDIDATES_TABLE = "candidates"
ASSESSMENTS_TABLE = "assessment_records"
BACKGROUND_TABLE = "background_records"
OFFERS_TABLE = "offer_records"
CANDIDATE_JDS_TABLE = "candidate_jds"
JDS_TABLE = "jds"
PIPELINE_EVENTS_TABLE = "pipeline_events"
EXPERIENCES_TABLE = "experiences"
EDUCATIONS_TABLE = "educations"


class CandidateStatus(str):
    NEW = "new"
    PENDING_ASSESSMENT = "pending_assessment"
    ASSESSMENT = "assessment"
    PENDING_INTERVIEW = "pending_interview"
    INTERVIEW = "interview"
    BACKGROUND_CHECK = "background_check"
    PENDING_OFFER = "pending_offer"
    OFFER = "offer"
    HIRED = "hired"
    REJECTED = "rejected"


# ============ CANDIDATE ============

class ExperienceEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    company: str = ""
    role: str = ""
    duration: str = ""
    details: str = ""
    highlights: List[str] = Field(default_factory=list)


class EducationEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    school: str = ""
    major: str = ""
    degree: str = ""
    duration: str = ""


class JDLinkInput(BaseModel):
    """A job posting link; a bare jd id string is accepted too"""
    model_config = ConfigDict(populate_by_name=True)

    jd_id: str = Field(min_length=1, alias="jdId")
    is_recommended: bool = Field(default=False, alias="isRecommended")

    @model_validator(mode='before')
    @classmethod
    def accept_plain_id(cls, data):
        if isinstance(data, str):
            return {"jd_id": data}
        return data


class CandidateCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(min_length=1)
    age: Optional[int] = Field(default=None, ge=0)
    gender: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    applied_position: Optional[str] = None
    source: Optional[str] = None
    city: Optional[str] = None
    work_years: Optional[str] = Field(default=None, alias="workYears")
    expected_salary: Optional[str] = Field(default=None, alias="expectedSalary")
    is_internal_referral: bool = Field(default=False, alias="isInternalReferral")
    referral_name: Optional[str] = Field(default=None, alias="referralName")
    is_duplicate: bool = Field(default=False, alias="isDuplicate")
    is_rehired_ex_employee: bool = Field(default=False, alias="isRehiredExEmployee")
    skills: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    current_status: Optional[str] = Field(default=None, alias="currentStatus")
    jd_ids: List[str] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)


# Update fields that are not columns of the candidates row
RELATION_FIELDS = {"current_status", "experience", "education", "linked_jd_ids", "recommended_jd_ids"}

# columns an explicit null must not clear
NON_NULLABLE_FIELDS = {"name", "skills", "tags", "is_internal_referral", "is_duplicate", "is_rehired_ex_employee"}


class CandidateUpdate(BaseModel):
    """Profile edit.

    current_status, when present, is applied as a status transition.
    experience and education replace the stored lists. linked_jd_ids replaces
    every job posting link; recommended_jd_ids replaces only the recommended ones.
    """
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    gender: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    applied_position: Optional[str] = None
    source: Optional[str] = None
    city: Optional[str] = None
    work_years: Optional[str] = Field(default=None, alias="workYears")
    expected_salary: Optional[str] = Field(default=None, alias="expectedSalary")
    is_internal_referral: Optional[bool] = Field(default=None, alias="isInternalReferral")
    referral_name: Optional[str] = Field(default=None, alias="referralName")
    is_duplicate: Optional[bool] = Field(default=None, alias="isDuplicate")
    is_rehired_ex_employee: Optional[bool] = Field(default=None, alias="isRehiredExEmployee")
    skills: Optional[List[str]] = None
    tags: Optional[List[str]] = None
    current_status: Optional[str] = Field(default=None, alias="currentStatus")
    experience: Optional[List[ExperienceEntry]] = None
    education: Optional[List[EducationEntry]] = None
    linked_jd_ids: Optional[List[JDLinkInput]] = Field(default=None, alias="linkedJdIds")
    recommended_jd_ids: Optional[List[str]] = Field(default=None, alias="recommendedJdIds")

    def profile_fields(self) -> dict:
        fields = self.model_dump(exclude_unset=True, exclude=RELATION_FIELDS)
        return {k: v for k, v in fields.items() if v is not None or k not in NON_NULLABLE_FIELDS}

    @property
    def is_empty(self) -> bool:
        return not self.model_fields_set


class Candidate(BaseModel):
    model_config = ConfigDict(extra="ignore")

    candidate_id: str
    name: str
    age: Optional[int] = None
    gender: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    applied_position: Optional[str] = None
    source: Optional[str] = None
    city: Optional[str] = None
    work_years: Optional[str] = None
    expected_salary: Optional[str] = None
    is_internal_referral: bool = False
    referral_name: Optional[str] = None
    is_duplicate: bool = False
    is_rehired_ex_employee: bool = False
    skills: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    current_status: str
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CandidateFilter(BaseModel):
    search: Optional[str] = None
    position_type: Optional[str] = None
    company: Optional[str] = None
    region: Optional[str] = None
    status: Optional[str] = None


# ============ SUB-RECORDS ============

class AssessmentCreate(BaseModel):
    type: str
    date: Optional[str] = None
    status: Optional[str] = None
    score: Optional[float] = None
    result: str = ""


class AssessmentRecord(AssessmentCreate):
    model_config = ConfigDict(extra="ignore")

    assessment_id: str
    candidate_id: str


class BackgroundUpsert(BaseModel):
    init_date: Optional[str] = None
    agency: Optional[str] = None
    status: Optional[str] = None
    conclusion: Optional[str] = None
    report_url: Optional[str] = None


class BackgroundRecord(BackgroundUpsert):
    model_config = ConfigDict(extra="ignore")

    candidate_id: str


class OfferUpsert(BaseModel):
    init_date: Optional[str] = None
    salary_structure: Optional[str] = None
    status: Optional[str] = None
    expected_join_date: Optional[str] = None


class OfferRecord(OfferUpsert):
    model_config = ConfigDict(extra="ignore")

    candidate_id: str


class LinkedJD(BaseModel):
    jd_id: str
    title: str = ""
    company: Optional[str] = None
    location: Optional[str] = None
    is_recommended: bool = False


# ============ AGGREGATE ============

class CandidateAggregate(Candidate):
    """A candidate with every sub-record and the flags derived from them"""
    interview_history: List[InterviewRecord] = Field(default_factory=list)
    open_schedules: List[InterviewRecord] = Field(default_factory=list)
    outcomes: List[InterviewRecord] = Field(default_factory=list)
    experience: List[ExperienceEntry] = Field(default_factory=list)
    education: List[EducationEntry] = Field(default_factory=list)
    assessment_history: List[AssessmentRecord] = Field(default_factory=list)
    background_check: Optional[BackgroundRecord] = None
    offer_info: Optional[OfferRecord] = None
    linked_jds: List[LinkedJD] = Field(default_factory=list)
    recommended_jds: List[LinkedJD] = Field(default_factory=list)
    was_eliminated: bool = False
    had_offer: bool = False


class NextRoundResponse(BaseModel):
    candidate_id: str
    next_round: int


class EliminationResult(BaseModel):
    candidate: Candidate
    interview: InterviewRecord


class DictionaryEntryCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    dict_type: str = Field(min_length=1, alias="dictType")
    name: str = Field(min_length=1)
    code: Optional[str] = None
    sort_order: int = Field(default=0, alias="sortOrder")


class DictionaryEntryUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    code: Optional[str] = None
    sort_order: Optional[int] = Field(default=None, alias="sortOrder")


class DictionaryEntry(BaseModel):
    model_config = ConfigDict(extra="ignore")

    entry_id: str
    dict_type: str
    name: str
    code: Optional[str] = None
    sort_order: int = 0

