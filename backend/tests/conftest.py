# tests/conftest.py
# Base Mongo en mémoire, stockage simulé et fixtures partagées.

import copy
import datetime as dt
import os
from types import SimpleNamespace

# Identifiants factices : l'URI Mongo par défaut (utilisateur vide) est invalide à l'import.
os.environ.setdefault("MONGODB_USER", "test")
os.environ.setdefault("MONGODB_PASSWORD", "test")
os.environ.setdefault("SEED_ON_STARTUP", "false")

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError, PyMongoError

from gardiens.core.settings import Settings
from gardiens.core.utils import utcnow
from gardiens.core.errors import NotFound, StorageUploadFailed
from gardiens.services.events import EventBus
from gardiens.services.storage import StoredObject

BASE_URL = "http://testserver"


def _matches(doc, query):
    for field, cond in query.items():
        value = doc.get(field)
        if isinstance(cond, dict) and any(k.startswith("$") for k in cond):
            for op, arg in cond.items():
                if op == "$in" and value not in arg:
                    return False
                if op == "$ne" and value == arg:
                    return False
        elif value != cond:
            return False
    return True


def _sort_key(value):
    return (value is not None, value)


class MockCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, key, direction=1):
        keys = key if isinstance(key, list) else [(key, direction)]
        for field, d in reversed(keys):
            self._docs.sort(key=lambda doc: _sort_key(doc.get(field)), reverse=d < 0)
        return self

    def limit(self, n):
        self._docs = self._docs[:n]
        return self

    async def to_list(self, length=None):
        return list(self._docs if length is None else self._docs[:length])

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for doc in self._docs:
            yield doc


class MockCollection:
    """Collection en mémoire (sous-ensemble de l'API motor utilisé par les services)."""

    def __init__(self, name, unique_keys=None):
        self.name = name
        self.docs = []
        self.unique_keys = unique_keys
        self.fail_writes = False

    def _check_write(self):
        if self.fail_writes:
            raise PyMongoError(f"{self.name} unavailable")

    def _check_unique(self, doc):
        if not self.unique_keys:
            return
        for other in self.docs:
            if other is not doc and all(other.get(k) == doc.get(k) for k in self.unique_keys):
                raise DuplicateKeyError(f"duplicate key on {self.name}")

    def find(self, query=None):
        return MockCursor([copy.deepcopy(d) for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query=None):
        for d in self.docs:
            if _matches(d, query or {}):
                return copy.deepcopy(d)
        return None

    async def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))

    async def insert_one(self, doc):
        self._check_write()
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self._check_unique(doc)
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    async def insert_many(self, docs):
        ids = [(await self.insert_one(d)).inserted_id for d in docs]
        return SimpleNamespace(inserted_ids=ids)

    def _apply(self, doc, update, inserting):
        doc.update(copy.deepcopy(update.get("$set", {})))
        if inserting:
            doc.update(copy.deepcopy(update.get("$setOnInsert", {})))

    async def update_one(self, query, update, upsert=False):
        self._check_write()
        for d in self.docs:
            if _matches(d, query):
                before = copy.deepcopy(d)
                self._apply(d, update, inserting=False)
                return SimpleNamespace(matched_count=1, modified_count=int(before != d), upserted_id=None)
        if not upsert:
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
        doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
        doc["_id"] = ObjectId()
        self._apply(doc, update, inserting=True)
        self._check_unique(doc)
        self.docs.append(doc)
        return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])

    async def find_one_and_update(self, query, update, return_document=False):
        self._check_write()
        for d in self.docs:
            if _matches(d, query):
                before = copy.deepcopy(d)
                self._apply(d, update, inserting=False)
                return copy.deepcopy(d) if return_document else before
        return None

    async def delete_one(self, query):
        for i, d in enumerate(self.docs):
            if _matches(d, query):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)


class MockDB:
    UNIQUE = {
        "missions_progress": ("user_id", "mission_id"),
        "keys_collected": ("user_id", "key_type"),
        "mission_configs": ("mission_id",),
    }

    def __init__(self):
        self._collections = {}

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = MockCollection(name, self.UNIQUE.get(name))
        return self._collections[name]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]


class FakeBlobStore:
    """Stockage d'images en mémoire, mêmes URL publiques que `BlobStore`."""

    def __init__(self, public_base_url=BASE_URL):
        self.public_base_url = public_base_url
        self.objects = {}
        self.fail_uploads = False

    def public_url(self, bucket, key):
        return f"{self.public_base_url}/media/{bucket}/{key}"

    async def upload(self, bucket, key, data, content_type):
        if self.fail_uploads:
            raise StorageUploadFailed("Erreur upload image: quota")
        self.objects[(bucket, key)] = (data, content_type)
        return StoredObject(bucket=bucket, key=key, url=self.public_url(bucket, key))

    async def download(self, bucket, key):
        if (bucket, key) not in self.objects:
            raise NotFound(f"Objet introuvable : {bucket}/{key}")
        return self.objects[(bucket, key)]

    async def remove(self, bucket, key):
        return 1 if self.objects.pop((bucket, key), None) is not None else 0


class FakeGateway:
    """Passerelle IA scriptée : chaque appel consomme la réponse suivante (texte ou exception)."""

    def __init__(self, answers=None, chunks=None):
        self.answers = list(answers or [])
        self.chunks = list(chunks or [])
        self.calls = []

    async def complete(self, messages, *, temperature=None, max_tokens=None):
        self.calls.append(messages)
        answer = self.answers.pop(0)
        if isinstance(answer, Exception):
            raise answer
        return answer

    async def stream(self, messages):
        self.calls.append(messages)
        for chunk in self.chunks:
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk


@pytest.fixture
def mock_db():
    return MockDB()


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        public_base_url=BASE_URL,
        ai_api_key="test-key",
        jwt_secret_key="test-secret",
        geofence_enforced=True,
        default_radius_meters=100.0,
    )


@pytest.fixture
def storage():
    return FakeBlobStore()


@pytest.fixture
def event_bus():
    return EventBus()


def mission_doc(mission_id="tour-eiffel", **overrides):
    doc = {
        "_id": ObjectId(),
        "mission_id": mission_id,
        "day": 2,
        "order_index": 2,
        "title": "Tour Eiffel - Le Mur pour la Paix",
        "key_reward": "air",
        "requires_photo": True,
        "target_lat": 48.8584,
        "target_lng": 2.2945,
        "radius_meters": 200.0,
        "auto_validation_enabled": True,
        "similarity_threshold": 0.7,
    }
    doc.update(overrides)
    return doc


def submission_doc(user_id, mission_id="tour-eiffel", status="pending", **overrides):
    doc = {
        "_id": ObjectId(),
        "mission_id": mission_id,
        "user_id": user_id,
        "type": "photo",
        "photo_url": f"{BASE_URL}/media/mission-proofs/{user_id}/{mission_id}-1.jpg",
        "storage_key": f"{user_id}/{mission_id}-1.jpg",
        "status": status,
        "created_at": utcnow(),
    }
    doc.update(overrides)
    return doc


def reference_doc(mission_id, url, minutes_ago=0):
    return {
        "_id": ObjectId(),
        "mission_id": mission_id,
        "image_url": url,
        "storage_key": url.rsplit("/", 1)[-1],
        "tags": [],
        "created_at": utcnow() - dt.timedelta(minutes=minutes_ago),
    }
