import copy
import threading
import time
from types import SimpleNamespace

import pytest
from bson import ObjectId
from flask_jwt_extended import create_access_token
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from packhouse.app_factory import create_app
from packhouse.provisioning_ext import EXTENSION_KEY


# ---------------------------------------------------------
# In-memory stand-ins for pymongo collections
# ---------------------------------------------------------

def _get_path(doc, path, default=None):
    cur = doc
    for part in path.split("."):
        if not isinstance(cur, dict) or part not in cur:
            return default
        cur = cur[part]
    return cur


def _set_path(doc, path, value):
    parts = path.split(".")
    cur = doc
    for part in parts[:-1]:
        cur = cur.setdefault(part, {})
    cur[parts[-1]] = value


def _matches(doc, query):
    for key, want in (query or {}).items():
        have = _get_path(doc, key)
        if isinstance(want, dict) and "$in" in want:
            if have not in want["$in"]:
                return False
        elif have != want:
            return False
    return True


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs

    def sort(self, keys, direction=None):
        if isinstance(keys, str):
            keys = [(keys, direction or 1)]
        for key, d in reversed(list(keys)):
            # ties: newest insert first when descending
            indexed = list(enumerate(self._docs))
            indexed.sort(key=lambda p: (_get_path(p[1], key), p[0]), reverse=(d == -1))
            self._docs = [doc for _, doc in indexed]
        return self

    def limit(self, n):
        if n:
            self._docs = self._docs[:n]
        return self

    def __iter__(self):
        return iter(self._docs)


class FakeCollection:
    def __init__(self, name):
        self.name = name
        self.docs = []
        self.fail_ops = set()
        self.slow_ops = {}
        self.calls = []
        self._lock = threading.Lock()

    # -- test controls --
    def fail(self, *ops):
        self.fail_ops.update(ops)

    def heal(self):
        self.fail_ops.clear()
        self.slow_ops.clear()

    def _enter(self, op):
        self.calls.append(op)
        delay = self.slow_ops.get(op)
        if delay:
            time.sleep(delay)
        if op in self.fail_ops:
            raise ServerSelectionTimeoutError(f"{self.name}.{op}: injected failure")

    # -- pymongo surface --
    def insert_one(self, doc):
        self._enter("insert_one")
        with self._lock:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", ObjectId())
            if any(d["_id"] == doc["_id"] for d in self.docs):
                raise DuplicateKeyError(f"duplicate _id {doc['_id']}")
            self.docs.append(doc)
            return SimpleNamespace(inserted_id=doc["_id"])

    def _apply(self, doc, update, inserting):
        for path, value in (update.get("$set") or {}).items():
            _set_path(doc, path, copy.deepcopy(value))
        if inserting:
            for path, value in (update.get("$setOnInsert") or {}).items():
                _set_path(doc, path, copy.deepcopy(value))
        for path, n in (update.get("$inc") or {}).items():
            _set_path(doc, path, (_get_path(doc, path) or 0) + n)

    def update_one(self, query, update, upsert=False):
        self._enter("update_one")
        with self._lock:
            for doc in self.docs:
                if _matches(doc, query):
                    self._apply(doc, update, inserting=False)
                    return SimpleNamespace(matched_count=1, modified_count=1, upserted_id=None)
            if not upsert:
                return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=None)
            doc = {k: v for k, v in query.items() if not isinstance(v, dict)}
            doc.setdefault("_id", ObjectId())
            self._apply(doc, update, inserting=True)
            self.docs.append(doc)
            return SimpleNamespace(matched_count=0, modified_count=0, upserted_id=doc["_id"])

    def find_one(self, query=None):
        self._enter("find_one")
        with self._lock:
            for doc in self.docs:
                if _matches(doc, query):
                    return copy.deepcopy(doc)
        return None

    def find(self, query=None):
        self._enter("find")
        with self._lock:
            return FakeCursor([copy.deepcopy(d) for d in self.docs if _matches(d, query)])

    def count_documents(self, query):
        self._enter("count_documents")
        with self._lock:
            return sum(1 for d in self.docs if _matches(d, query))


class FakeDatabase:
    name = "packhouse_test"

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]

    def fail(self, name, *ops):
        self[name].fail(*ops)

    def heal(self):
        for col in self.collections.values():
            col.heal()


# ---------------------------------------------------------
# fixtures
# ---------------------------------------------------------

TEST_CONFIG = {
    "TESTING": True,
    "JWT_SECRET_KEY": "test-secret-key-with-enough-bytes-for-hs256",
    "SECRET_KEY": "test",
    "PROVISIONING_MODE": "inline",
    "PROVISIONING_CONCURRENT": False,
    "PROVISIONING_IDEMPOTENT": False,
    "PROVISIONING_LEGACY_FALLBACK": True,
    "PROVISIONING_STEP_TIMEOUT": 2.0,
}


@pytest.fixture
def db():
    return FakeDatabase()


@pytest.fixture
def make_app(db):
    apps = []

    def _make(**overrides):
        app = create_app({**TEST_CONFIG, **overrides}, db=db)
        apps.append(app)
        return app

    yield _make

    for app in apps:
        prov = app.extensions.get(EXTENSION_KEY)
        if prov is not None:
            prov.submission.shutdown()


@pytest.fixture
def app(make_app):
    return make_app()


@pytest.fixture
def prov(app):
    return app.extensions[EXTENSION_KEY]


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def auth_headers(app):
    with app.app_context():
        token = create_access_token(identity="qa-user")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def acme_order():
    return {
        "clientName": "ACME",
        "items": [{"name": "Hass Avocado", "qty": 500, "unit": "kg"}],
    }
