import pytest
from fastapi.testclient import TestClient

from talent_pipeline.aggregate import CandidateAggregateReader
from talent_pipeline.candidate_models import CANDIDATES_TABLE
from talent_pipeline.config import Settings
from talent_pipeline.enumerations import DICTIONARY_TABLE, EnumerationResolver, default_dictionary_rows
from talent_pipeline.interview_lifecycle import InterviewLifecycleManager
from talent_pipeline.pipeline import CandidatePipelineCoordinator
from talent_pipeline.server import create_app
from talent_pipeline.tests.memory_store import InMemoryStore


@pytest.fixture
def store():
    """Store seeded with the default data dictionary"""
    store = InMemoryStore()
    store.seed(DICTIONARY_TABLE, default_dictionary_rows())
    return store


@pytest.fixture
def empty_store():
    return InMemoryStore()


@pytest.fixture
def resolver(store):
    return EnumerationResolver(store)


@pytest.fixture
def interviews(store, resolver):
    return InterviewLifecycleManager(store, resolver)


@pytest.fixture
def pipeline(store, resolver, interviews):
    return CandidatePipelineCoordinator(store, resolver, interviews)


@pytest.fixture
def reader(store, interviews):
    return CandidateAggregateReader(store, interviews)


@pytest.fixture
def make_candidate(store):
    """Insert a candidate row directly and return it"""
    counter = {"n": 0}

    def _make(status="new", **fields):
        counter["n"] += 1
        row = {
            "candidate_id": fields.pop("candidate_id", f"cand_test{counter['n']:04d}"),
            "name": fields.pop("name", f"Candidate {counter['n']}"),
            "email": None,
            "phone": None,
            "applied_position": None,
            "source": None,
            "city": None,
            "skills": [],
            "tags": [],
            "current_status": status,
            "created_at": f"2024-05-01T00:00:{counter['n']:02d}+00:00",
            "updated_at": f"2024-05-01T00:00:{counter['n']:02d}+00:00",
        }
        row.update(fields)
        store.seed(CANDIDATES_TABLE, [row])
        return row

    return _make


@pytest.fixture
def api_client(store):
    """TestClient over an app wired to the in-memory store"""
    app = create_app(settings=Settings(store_retry_backoff_seconds=0), store=store)
    with TestClient(app) as client:
        yield client
