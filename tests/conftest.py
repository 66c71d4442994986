"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from models.base import Base
import models  # noqa: F401
from typing import AsyncGenerator, Dict, Optional


class DictSettings:
    """In-memory stand-in for SettingsStore"""

    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values = dict(values or {})
        self.listeners = []

    def subscribe(self, listener):
        self.listeners.append(listener)

    async def get(self, key: str) -> Optional[str]:
        return self.values.get(key)

    async def get_all(self) -> Dict[str, str]:
        return dict(self.values)

    async def set(self, key: str, value: Optional[str]) -> None:
        self.values[key] = value
        for listener in self.listeners:
            listener(key, value)


class DictUserSettings:
    """In-memory stand-in for UserSettingsStore"""

    def __init__(self, values: Optional[Dict[int, Dict[str, str]]] = None):
        self.values = values or {}

    async def get(self, user_id: int, key: str) -> Optional[str]:
        return self.values.get(user_id, {}).get(key)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """SQLite database file per test"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        echo=False,
        poolclass=NullPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
def settings_provider():
    return DictSettings()


@pytest.fixture
def calendar_events():
    """Three Graph calendar events"""
    return [
        {
            "id": f"evt-{i}",
            "subject": f"Meeting {i}",
            "bodyPreview": f"Agenda for meeting {i}",
            "start": {"dateTime": f"2024-01-1{i}T09:00:00.0000000", "timeZone": "UTC"},
            "end": {"dateTime": f"2024-01-1{i}T10:00:00.0000000", "timeZone": "UTC"},
            "webLink": f"https://outlook.office365.com/owa/?itemid=evt-{i}",
        }
        for i in range(1, 4)
    ]


@pytest.fixture
def issue_payload():
    """Issue tracker search result in REST shape"""
    return {
        "key": "NT-101",
        "fields": {
            "summary": "Customer cannot log in",
            "status": {"name": "In Progress"},
            "priority": {"name": "High"},
            "assignee": {"displayName": "Sam Lee"},
            "created": "2024-01-10T08:00:00.000+0000",
            "duedate": "2024-01-20",
        },
    }


@pytest.fixture
def make_settings():
    return DictSettings


@pytest.fixture
def make_user_settings():
    return DictUserSettings


@pytest_asyncio.fixture
async def bym_matrix(db_session):
    """
    BYM sale type with two ticket groups and three enabled capabilities.

    Platform: Web Portal (SSO, Custom domain bolt-on, inactive Legacy), Mobile App
    Payments: Card Payments (Gateway setup)
    Reporting is ungrouped and not enabled for BYM.
    """
    from models.base import ItemType
    from onboarding.config_resolver import OnboardingConfigRepository
    from schemas.onboarding import MatrixUpdate

    repository = OnboardingConfigRepository(db_session)
    bym = await repository.add_sale_type("BYM")
    upgrade = await repository.add_sale_type("Upgrade", sort_order=1)
    payments = await repository.add_ticket_group("Payments", sort_order=1)
    platform = await repository.add_ticket_group("Platform", sort_order=0)

    web = await repository.add_capability("Web Portal", platform.id, sort_order=0)
    mobile = await repository.add_capability("Mobile App", platform.id, sort_order=1)
    cards = await repository.add_capability("Card Payments", payments.id, sort_order=2)
    reporting = await repository.add_capability("Reporting", None, sort_order=3)

    await repository.add_item(web.id, "Custom domain", ItemType.BOLT_ON, sort_order=1)
    await repository.add_item(web.id, "SSO", sort_order=0)
    legacy = await repository.add_item(web.id, "Legacy", sort_order=2)
    legacy.is_active = False
    await db_session.commit()
    await repository.add_item(cards.id, "Gateway setup")

    await repository.batch_update_matrix([
        MatrixUpdate(sale_type_id=bym.id, capability_id=web.id, enabled=True),
        MatrixUpdate(sale_type_id=bym.id, capability_id=mobile.id, enabled=True),
        MatrixUpdate(sale_type_id=bym.id, capability_id=cards.id, enabled=True),
        MatrixUpdate(sale_type_id=bym.id, capability_id=reporting.id, enabled=False),
        MatrixUpdate(sale_type_id=upgrade.id, capability_id=reporting.id, enabled=True),
    ])

    return {
        "sale_types": {"BYM": bym.id, "Upgrade": upgrade.id},
        "groups": {"Platform": platform.id, "Payments": payments.id},
        "capabilities": {
            "Web Portal": web.id,
            "Mobile App": mobile.id,
            "Card Payments": cards.id,
            "Reporting": reporting.id,
        },
    }
