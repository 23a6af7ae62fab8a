"""Shared fixtures for Rapid Offer pipeline tests."""

import asyncio
import uuid
from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from config.settings import get_settings
from database.models import Base, BuyBox, Lead


@pytest.fixture
def database_url(tmp_path, monkeypatch):
    """Per-test SQLite file database and clean settings."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'rapid_offer_test.db'}"
    monkeypatch.setenv("DATABASE_URL", url)
    monkeypatch.setenv("SCHEDULER_ENABLED", "false")
    monkeypatch.setenv("RATE_LIMIT_PER_MINUTE", "10000")
    monkeypatch.setenv("JWT_SECRET_KEY", "test-secret")
    monkeypatch.delenv("API_KEY", raising=False)
    get_settings.cache_clear()
    yield url
    get_settings.cache_clear()


@pytest.fixture
def client(database_url):
    """FastAPI test client with the lifespan (DB + services) running."""
    from api.main import create_app
    with TestClient(create_app()) as test_client:
        yield test_client


class Database:
    """Sync seeding/reading helpers over a separate engine on the test DB."""

    def __init__(self, url: str):
        self.url = url

    async def _run(self, work):
        engine = create_async_engine(self.url)
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            factory = async_sessionmaker(engine, expire_on_commit=False)
            async with factory() as session:
                result = await work(session)
                await session.commit()
                return result
        finally:
            await engine.dispose()

    def add(self, *objects):
        async def work(session):
            session.add_all(objects)
        asyncio.run(self._run(work))
        return objects[0] if len(objects) == 1 else objects

    def get(self, model, object_id):
        async def work(session):
            return await session.get(model, object_id)
        return asyncio.run(self._run(work))

    def all(self, model, **filters):
        async def work(session):
            q = select(model)
            for name, value in filters.items():
                q = q.where(getattr(model, name) == value)
            result = await session.execute(q)
            return list(result.scalars().all())
        return asyncio.run(self._run(work))


@pytest.fixture
def db(database_url):
    return Database(database_url)


@pytest.fixture
def auth_headers():
    """Bearer headers for a user: auth_headers("closer", sub="c-1")."""
    from api.middleware.auth import create_jwt_token

    def _headers(role="dialer", sub="user-1", tenant_id="tenant-1"):
        token, _ = create_jwt_token({"sub": sub, "role": role, "tenant_id": tenant_id})
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def make_lead():
    """Lead factory; the defaults score as a full match for make_buy_box()."""
    def _lead(**fields):
        now = datetime.utcnow()
        data = {
            "id": str(uuid.uuid4()),
            "tenant_id": "tenant-1",
            "dedupe_key": str(uuid.uuid4()),
            "source": "other",
            "owner_name": "Pat Seller",
            "property_address": "123 Main St",
            "city": "Dallas",
            "state": "TX",
            "county": "Dallas",
            "property_type": "SFR",
            "beds": 3,
            "baths": 2,
            "sqft": 1500,
            "year_built": 1995,
            "asking_price": 150000,
            "arv": 250000,
            "status": "new",
            "lead_tier": "warm",
            "tags": [],
            "dialer_intake": {},
            "intake_locked": False,
            "score_reasons": [],
            "score_failed_checks": [],
            "routing_reasons": [],
            "handoff_status": "none",
            "missing_fields": [],
            "escalated": False,
            "closer": {},
            "skip_trace": {},
            "created_at": now,
            "updated_at": now,
        }
        data.update(fields)
        return Lead(**data)
    return _lead


@pytest.fixture
def make_buy_box():
    def _box(**fields):
        data = {
            "id": str(uuid.uuid4()),
            "tenant_id": "tenant-1",
            "market_key": "TX-DFW",
            "label": "DFW Flips",
            "property_types": ["SFR"],
            "min_beds": 3,
            "min_baths": 2,
            "min_sqft": 1200,
            "min_year_built": 1980,
            "condition_allowed": [],
            "buy_price_min": 100000,
            "buy_price_max": 200000,
            "arv_min": 200000,
            "arv_max": 300000,
            "counties": ["Dallas"],
            "city_overrides": {},
            "exclusions": [],
            "strategy": "flip",
            "requires_positive_cash_flow": False,
            "cash_flow_config": {},
            "active": True,
            "created_at": datetime.utcnow(),
        }
        data.update(fields)
        return BuyBox(**data)
    return _box


@pytest.fixture
def full_intake():
    """A complete dialer intake in camelCase, as the dialer UI sends it."""
    return {
        "propertyAddress": "123 Main St",
        "occupancyType": "vacant",
        "conditionTier": "medium",
        "askingPrice": 150000,
        "mortgageFreeAndClear": "no",
        "mortgageBalance": 100000,
        "mortgageCurrent": "yes",
        "motivationRating": 4,
        "timelineToClose": "30 days",
        "sellerReason": "Relocating for work",
        "sellerFlexibility": "terms",
    }
