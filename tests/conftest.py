"""
Shared pytest fixtures for the APQP Document Traceability test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - memory_store: fresh InMemoryEntityStore
    - make_product: factory seeding a product + characteristics into a store
    - product: Product with three characteristics created via the API
"""

import pytest

from app import create_app
from app.core.records import EntityKind
from app.models import db as _db
from app.store import InMemoryEntityStore

SAMPLE_CHARACTERISTICS = [
    {"name": "장착홀 직경", "type": "product", "category": "critical",
     "lsl": 12.0, "usl": 12.1, "unit": "mm",
     "measurement_method": "3차원 측정기(CMM)", "process_name": "CNC 가공"},
    {"name": "볼트 체결 토크", "type": "process", "category": "major",
     "lsl": 90.0, "usl": 110.0, "unit": "N·m",
     "measurement_method": "토크 검사기 측정", "process_name": "조립"},
    {"name": "도장 외관", "type": "product", "category": "minor",
     "specification": "한도 샘플 기준", "measurement_method": "육안 검사",
     "process_name": "도장"},
]


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


# ── Entity store fixtures ────────────────────────────────────────────────


@pytest.fixture()
def memory_store():
    """Fresh dict-backed entity store (no database)."""
    return InMemoryEntityStore()


@pytest.fixture()
def make_product():
    """Factory: make_product(store, characteristics=None, **product_fields) -> ProductRecord."""

    def _make(store, characteristics=None, **fields):
        values = {
            "code": "P-001",
            "name": "브레이크 브라켓",
            "customer": "ACME",
            "part_number": "AB123",
        }
        values.update(fields)
        product = store.create(EntityKind.PRODUCT, values)
        chars = SAMPLE_CHARACTERISTICS if characteristics is None else characteristics
        for order, spec in enumerate(chars, start=1):
            store.create(EntityKind.CHARACTERISTIC, {"product_id": product.id, "sort_order": order, **spec})
        return product

    return _make


# ── API convenience fixtures ─────────────────────────────────────────────


@pytest.fixture()
def product(client):
    """Create a Product with SAMPLE_CHARACTERISTICS via the API; returns its JSON."""
    res = client.post("/api/v1/products", json={
        "code": "API-001", "name": "캘리퍼 브라켓", "customer": "ACME", "part_number": "CB-77",
    })
    assert res.status_code == 201
    body = res.get_json()
    for spec in SAMPLE_CHARACTERISTICS:
        r = client.post(f"/api/v1/products/{body['id']}/characteristics", json=spec)
        assert r.status_code == 201
    return body
