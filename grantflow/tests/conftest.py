"""
Pytest configuration and fixtures for grantflow tests
"""
import pytest
from datetime import datetime, timedelta
from typing import AsyncGenerator
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from httpx import AsyncClient, ASGITransport

from grantflow.main import create_app
from grantflow.core.clock import utcnow
from grantflow.core.deps import get_notifier
from grantflow.core.security import create_access_token
from grantflow.db.base import Base
from grantflow.db.session import get_db, get_session_factory
from grantflow.models.application import Application, ApplicationStatus
from grantflow.models.investment import Investment, InvestmentStatus
from grantflow.models.investment_term import InvestmentTerm
from grantflow.models.milestone import Milestone, MilestoneStatus
from grantflow.models.program import FundingCondition, Program, ProgramStatus, ProgramType
from grantflow.models.tier_assignment import TierAssignment
from grantflow.models.user import User
from grantflow.repositories.application_repository import ApplicationRepository
from grantflow.repositories.program_repository import ProgramRepository
from grantflow.repositories.user_repository import UserRepository

# Fixed clock for service tests; funding runs from June 1st to June 30th 2024
NOW = datetime(2024, 6, 15, 12, 0, 0)
APPLICATION_START = datetime(2024, 5, 1)
APPLICATION_END = datetime(2024, 5, 31)
FUNDING_START = datetime(2024, 6, 1)
FUNDING_END = datetime(2024, 6, 30)


class RecordingNotifier:
    """Collects published notifications instead of storing them."""

    def __init__(self):
        self.published = []

    async def publish(self, topic, payload):
        self.published.append((topic, payload))

    @property
    def payloads(self):
        return [payload for _, payload in self.published]


class FailingNotifier:
    async def publish(self, topic, payload):
        raise RuntimeError("notification backend unavailable")


@pytest.fixture
async def engine(tmp_path):
    """
    Fresh file-backed SQLite database per test.
    A file (not :memory:) gives every session its own connection, so
    concurrent transactions really compete.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'grantflow.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


async def _create_user(session_factory, email: str, full_name: str) -> User:
    async with session_factory() as db:
        async with db.begin():
            return await UserRepository(db).create(User(email=email, full_name=full_name))


@pytest.fixture
async def host(session_factory) -> User:
    return await _create_user(session_factory, "host@test.com", "Program Host")


@pytest.fixture
async def validator(session_factory) -> User:
    return await _create_user(session_factory, "validator@test.com", "Program Validator")


@pytest.fixture
async def applicant(session_factory) -> User:
    return await _create_user(session_factory, "builder@test.com", "Builder")


@pytest.fixture
async def investor(session_factory) -> User:
    return await _create_user(session_factory, "investor@test.com", "Investor")


@pytest.fixture
async def second_investor(session_factory) -> User:
    return await _create_user(session_factory, "investor2@test.com", "Second Investor")


@pytest.fixture
def make_program(session_factory, host, validator):
    async def _make(**overrides) -> Program:
        values = dict(
            name="Builder Grants",
            type=ProgramType.FUNDING.value,
            status=ProgramStatus.PUBLISHED.value,
            application_start_date=APPLICATION_START,
            application_end_date=APPLICATION_END,
            funding_start_date=FUNDING_START,
            funding_end_date=FUNDING_END,
            max_funding_amount="100000",
            fee_percentage="3",
            funding_condition=FundingCondition.NONE.value,
            creator_id=host.id,
            validator_id=validator.id,
        )
        values.update(overrides)
        async with session_factory() as db:
            async with db.begin():
                return await ProgramRepository(db).create(Program(**values))
    return _make


@pytest.fixture
def make_application(session_factory, applicant):
    async def _make(program: Program, **overrides) -> Application:
        values = dict(
            program_id=program.id,
            applicant_id=applicant.id,
            name="Open Source Wallet",
            status=ApplicationStatus.ACCEPTED.value,
            price="10000",
            funding_target="1000",
        )
        values.update(overrides)
        async with session_factory() as db:
            async with db.begin():
                return await ApplicationRepository(db).create(Application(**values))
    return _make


@pytest.fixture
def add_rows(session_factory):
    """Insert arbitrary model instances in one transaction."""
    async def _add(*rows):
        async with session_factory() as db:
            async with db.begin():
                db.add_all(rows)
        return rows
    return _add


@pytest.fixture
def make_milestone(add_rows):
    async def _make(application: Application, **overrides) -> Milestone:
        values = dict(
            application_id=application.id,
            title="Milestone",
            sort_order=0,
            percentage=None,
            price="0",
            status=MilestoneStatus.PENDING.value,
        )
        values.update(overrides)
        (milestone,) = await add_rows(Milestone(**values))
        return milestone
    return _make


@pytest.fixture
def make_investment(add_rows):
    async def _make(application: Application, user: User, amount: str, **overrides) -> Investment:
        values = dict(
            application_id=application.id,
            user_id=user.id,
            amount=amount,
            status=InvestmentStatus.CONFIRMED.value,
            tx_hash="0xabc",
        )
        values.update(overrides)
        (investment,) = await add_rows(Investment(**values))
        return investment
    return _make


@pytest.fixture
def assign_tier(add_rows):
    async def _assign(program: Program, user: User, tier: str, max_amount: str) -> TierAssignment:
        (assignment,) = await add_rows(TierAssignment(
            program_id=program.id, user_id=user.id, tier=tier, max_investment_amount=max_amount,
        ))
        return assignment
    return _assign


@pytest.fixture
def make_term(add_rows):
    async def _make(application: Application, tier: str, purchase_limit: int | None = None) -> InvestmentTerm:
        (term,) = await add_rows(InvestmentTerm(
            application_id=application.id, title=f"{tier} tier", price=tier, purchase_limit=purchase_limit,
        ))
        return term
    return _make


@pytest.fixture
async def test_client(session_factory, notifier) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test client wired to the per-test database and recording notifier.
    """
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session
            await session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_notifier] = lambda: notifier

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


def auth_headers(user: User) -> dict:
    return {"Authorization": f"Bearer {create_access_token(user.id)}"}


def live_window(now: datetime | None = None) -> dict:
    """Program dates with the funding window open at the real current time."""
    now = now or utcnow()
    return dict(
        application_start_date=now - timedelta(days=30),
        application_end_date=now - timedelta(days=10),
        funding_start_date=now - timedelta(days=5),
        funding_end_date=now + timedelta(days=5),
    )
