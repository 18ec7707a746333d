import pytest
from fastapi.testclient import TestClient

from backend.app import create_app
from backend.config import Settings
from backend.core.models import Candidate, Course, CourseResult
from backend.core.pipeline import TrackerService
from backend.storage.json_store import JsonFileStore
from backend.storage.repositories import Repositories


@pytest.fixture
def courses():
    return [
        Course(id="C-MATH101", code="MATH101", title="Mathematics Methods", weight=0.5,
               pass_threshold=70, is_required=True, tracks=["t1"]),
        Course(id="C-SCI201", code="SCI201", title="Science Pedagogy", weight=0.5,
               pass_threshold=70, is_required=True, tracks=["t1"]),
        Course(id="C-ENG110", code="ENG110", title="Classroom English", weight=0.3,
               pass_threshold=75, is_required=True, tracks=["t2"]),
        Course(id="C-ICT050", code="ICT050", title="Digital Tools", weight=0.2,
               pass_threshold=60, is_required=False, tracks=["t1", "t3"]),
    ]


@pytest.fixture
def make_candidate():
    def _make(cid="C-1", email="sara@example.ae", track="t1", scores=None, **kwargs):
        results = [CourseResult(code=code, title=code, score=score, passed=score is not None and score >= 70)
                   for code, score in (scores or {}).items()]
        return Candidate(id=cid, name=kwargs.pop("name", "Sara Ahmed"), email=email,
                         subject=kwargs.pop("subject", "Mathematics"), track_id=track,
                         course_results=results, **kwargs)
    return _make


@pytest.fixture
def store(tmp_path):
    s = JsonFileStore(str(tmp_path / "data"))
    s.initialize()
    return s


@pytest.fixture
def repos(store):
    return Repositories(store)


@pytest.fixture
def service(repos, courses):
    repos.store.write("courses", [c.to_dict() for c in courses])
    return TrackerService(repos)


@pytest.fixture
def client(tmp_path):
    settings = Settings(
        data_dir=str(tmp_path / "data"),
        frontend_dist=str(tmp_path / "nofront"),
        admin_email="admin@test.local",
        admin_password="secret",
    )
    with TestClient(create_app(settings)) as c:
        yield c
