"""Pytest fixtures for storefront tests."""

import copy
import json
import uuid
from collections import defaultdict

import pytest
from fastapi.testclient import TestClient

from auth import create_token
from config import Settings
from database import PRODUCT, Store
from errors import PersistenceFailure
from gateways import IdentityProvider, PinningGateway
from main import create_app


class MemoryStore(Store):
    """In-process store used in place of MongoDB."""

    def __init__(self):
        self.collections = defaultdict(dict)
        self.failing_updates = set()
        self.failing_inserts = set()

    def put(self, collection: str, doc_id: str, doc: dict) -> dict:
        self.collections[collection][doc_id] = {**copy.deepcopy(doc), "id": doc_id}
        return copy.deepcopy(self.collections[collection][doc_id])

    def _get(self, collection, doc_id):
        doc = self.collections[collection].get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def _find(self, collection, filters=None):
        filters = filters or {}
        return [
            copy.deepcopy(doc)
            for doc in self.collections[collection].values()
            if all(doc.get(k) == v for k, v in filters.items())
        ]

    def _insert(self, collection, doc):
        if collection in self.failing_inserts:
            raise PersistenceFailure(f"Failed to create {collection}", "simulated outage")
        return self.put(collection, uuid.uuid4().hex, doc)

    def _update(self, collection, doc_id, changes):
        if doc_id in self.failing_updates:
            raise PersistenceFailure(f"Failed to update {collection}", "simulated outage")
        doc = self.collections[collection].get(doc_id)
        if doc is None:
            return None
        doc.update(copy.deepcopy(changes))
        return copy.deepcopy(doc)

    def _delete(self, collection, doc_id):
        return self.collections[collection].pop(doc_id, None) is not None

    def ping(self):
        pass

    def close(self):
        pass


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.reason = "OK" if status_code < 400 else "Error"
        self.text = json.dumps(payload) if payload is not None else ""

    @property
    def ok(self):
        return self.status_code < 400

    @property
    def content(self):
        return self.text.encode()

    def json(self):
        return self._payload


class StubSession:
    """Stands in for ``requests.Session``; records every call."""

    def __init__(self):
        self.calls = []
        self.responder = lambda method, url, kwargs: FakeResponse(200, {})

    def request(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        return self.responder(method, url, kwargs)

    def delete(self, url, **kwargs):
        return self.request("DELETE", url, **kwargs)


@pytest.fixture
def settings():
    return Settings(
        database_url="mongodb://unused",
        database_name="storefront_test",
        jwt_secret="test-secret",
        pinata_jwt="pin-jwt",
        pinata_api_url="https://pinata.test",
        clerk_secret_key="sk_test",
        clerk_api_url="https://clerk.test/v1",
        log_level="WARNING",
        port=8000,
    )


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def pinning_session():
    return StubSession()


@pytest.fixture
def idp_session():
    return StubSession()


@pytest.fixture
def pinning(settings, pinning_session):
    return PinningGateway(settings.pinata_jwt, settings.pinata_api_url, session=pinning_session)


@pytest.fixture
def idp(settings, idp_session):
    return IdentityProvider(settings.clerk_secret_key, settings.clerk_api_url, session=idp_session)


@pytest.fixture
def client(settings, store, pinning, idp):
    app = create_app(settings=settings, store=store, pinning=pinning, idp=idp)
    return TestClient(app)


def _headers(settings, user):
    return {"Authorization": f"Bearer {create_token(user, settings.jwt_secret)}"}


@pytest.fixture
def admin_headers(settings):
    return _headers(settings, {"id": "admin-1", "email": "admin@example.com", "name": "Admin", "role": "admin"})


@pytest.fixture
def customer_headers(settings):
    return _headers(settings, {"id": "user-1", "email": "jane@example.com", "name": "Jane", "role": "customer"})


@pytest.fixture
def add_product(store):
    """Insert a product under a fixed id."""

    def _add(product_id="P1", name="Widget", price=10.0, stock=5, **extra):
        return store.put(PRODUCT, product_id, {
            "name": name,
            "description": f"{name} description",
            "price": price,
            "category": "Gadgets",
            "image": "/placeholder.svg",
            "stock": stock,
            **extra,
        })

    return _add


@pytest.fixture
def fake_response():
    return FakeResponse
