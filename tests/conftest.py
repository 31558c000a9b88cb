"""Pytest configuration and fixtures."""

import re
from copy import deepcopy
from typing import Any, Dict, List, Optional

import cloudinary
import pytest
from fastapi.testclient import TestClient

from lunglens.api.deps import (
    get_image_store,
    get_patient_store,
    get_prediction_client,
    get_report_generator,
    get_user_store,
)
from lunglens.config.settings import Settings
from lunglens.main import app
from lunglens.models.user import User
from lunglens.services.patient_service import PatientStore
from lunglens.services.prediction_service import PredictionClient
from lunglens.services.report_service import ReportGenerator
from lunglens.services.user_service import UserStore
from lunglens.utils.cloudinary_service import ImageStore


class FakeCursor:
    """Just enough of a Motor cursor for find().limit().to_list()."""

    def __init__(self, documents: List[Dict[str, Any]]):
        self.documents = documents
        self.limit_value: Optional[int] = None

    def limit(self, value: int) -> "FakeCursor":
        self.limit_value = value
        return self

    async def to_list(self, length: Optional[int] = None) -> List[Dict[str, Any]]:
        cap = self.limit_value or length
        return self.documents[:cap] if cap else list(self.documents)


class FakeCollection:
    """In-memory stand-in for an AsyncIOMotorCollection.

    Understands equality filters and the $or/$regex filter used by search.
    """

    def __init__(self, documents: Optional[List[Dict[str, Any]]] = None):
        self.documents: List[Dict[str, Any]] = [deepcopy(d) for d in documents or []]
        self.calls: List[str] = []
        self.last_filter: Optional[Dict[str, Any]] = None

    @staticmethod
    def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
        for key, condition in query.items():
            if key == "$or":
                if not any(FakeCollection._matches(document, sub) for sub in condition):
                    return False
                continue
            value = document.get(key)
            if isinstance(condition, dict) and "$regex" in condition:
                flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
                if value is None or not re.search(condition["$regex"], str(value), flags):
                    return False
            elif value != condition:
                return False
        return True

    @staticmethod
    def _project(document: Dict[str, Any], projection: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        result = deepcopy(document)
        if projection and projection.get("_id") == 0:
            result.pop("_id", None)
        return result

    async def find_one(self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None):
        self.calls.append("find_one")
        for document in self.documents:
            if self._matches(document, query):
                return self._project(document, projection)
        return None

    async def replace_one(self, query: Dict[str, Any], document: Dict[str, Any], upsert: bool = False):
        self.calls.append("replace_one")
        for index, existing in enumerate(self.documents):
            if self._matches(existing, query):
                self.documents[index] = {"_id": existing.get("_id"), **deepcopy(document)}
                return
        if upsert:
            self.documents.append({"_id": f"oid-{len(self.documents)}", **deepcopy(document)})

    def find(self, query: Dict[str, Any], projection: Optional[Dict[str, Any]] = None) -> FakeCursor:
        self.calls.append("find")
        self.last_filter = query
        return FakeCursor([self._project(d, projection) for d in self.documents if self._matches(d, query)])


@pytest.fixture(scope="session")
def anyio_backend():
    return "asyncio"


@pytest.fixture
def settings() -> Settings:
    """Settings with test credentials and no retry delay."""
    return Settings(
        _env_file=None,
        LLM_API_KEY="test-api-key",
        LLM_BASE_URL="https://llm.test/v1",
        CLASSIFIER_URL="https://classifier.test",
        CLASSIFIER_RETRY_DELAY=0,
        CLOUDINARY_CLOUD_NAME="demo",
        CLOUDINARY_API_KEY="123456789",
        CLOUDINARY_API_SECRET="test-secret",
        SEARCH_RESULT_LIMIT=10,
    )


@pytest.fixture(autouse=True)
def cloudinary_config(settings):
    """Signed URLs are computed locally, so test credentials are enough."""
    cloudinary.config(
        cloud_name=settings.CLOUDINARY_CLOUD_NAME,
        api_key=settings.CLOUDINARY_API_KEY,
        api_secret=settings.CLOUDINARY_API_SECRET,
        secure=True,
    )


@pytest.fixture
def sample_patient_document() -> Dict[str, Any]:
    """A stored patient record as the edit form would save it."""
    return {
        "_id": "oid-seed",
        "patientId": "3f2a9c1e5b7d4e0fa1b2c3d4e5f60718",
        "name": "Amara Okafor",
        "age": 42,
        "sex": "female",
        "email": "amara@example.com",
        "phone": "+234 803 555 0199",
        "address": "12 Marina Road, Lagos",
        "symptoms": ["Fever", "Night Sweats"],
        "medicalHistory": "Treated for malaria in 2019",
        "allergies": "",
        "medications": "",
        "emergencyContact": "Chidi Okafor, +234 803 555 0100",
        "images": [],
        "createdAt": "2026-01-10T09:00:00+00:00",
        "updatedAt": "2026-01-10T09:00:00+00:00",
    }


@pytest.fixture
def patient_collection(sample_patient_document) -> FakeCollection:
    return FakeCollection([sample_patient_document])


@pytest.fixture
def user_collection() -> FakeCollection:
    return FakeCollection([
        {
            "_id": "oid-user",
            "userId": "dr.mensah",
            "name": "Kofi Mensah",
            "role": "doctor",
            "hashed_password": User.hash_password("correct-horse"),
        }
    ])


@pytest.fixture
def patient_store(patient_collection, settings) -> PatientStore:
    return PatientStore(patient_collection, search_limit=settings.SEARCH_RESULT_LIMIT)


@pytest.fixture
def user_store(user_collection) -> UserStore:
    return UserStore(user_collection)


@pytest.fixture
def api_client(patient_store, user_store, settings):
    """TestClient with every dependency handle replaced by a test double.

    The lifespan does not run, so no database or Cloudinary connection is made.
    """
    handles = {
        "image_store": ImageStore(settings),
        "prediction_client": PredictionClient(settings),
        "report_generator": ReportGenerator(settings),
    }
    app.dependency_overrides[get_patient_store] = lambda: patient_store
    app.dependency_overrides[get_user_store] = lambda: user_store
    app.dependency_overrides[get_image_store] = lambda: handles["image_store"]
    app.dependency_overrides[get_prediction_client] = lambda: handles["prediction_client"]
    app.dependency_overrides[get_report_generator] = lambda: handles["report_generator"]

    client = TestClient(app, raise_server_exceptions=False)
    client.handles = handles
    yield client
    app.dependency_overrides.clear()


@pytest.fixture
def make_collection():
    """Factory for extra in-memory collections."""
    return FakeCollection
