import logging
from datetime import datetime
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.core.clock import as_utc, utcnow
from grantflow.core.errors import (
    AlreadyProcessedError,
    AuthorizationError,
    InvariantViolationError,
    NotFoundError,
    WindowClosedError,
)
from grantflow.core.money import MoneyAmount
from grantflow.db.session import run_in_transaction
from grantflow.models.application import Application
from grantflow.models.investment import Investment, InvestmentStatus
from grantflow.models.milestone import Milestone, MilestoneStatus
from grantflow.models.program import Program
from grantflow.repositories.application_repository import ApplicationRepository
from grantflow.repositories.investment_repository import InvestmentRepository
from grantflow.repositories.milestone_repository import MilestoneRepository
from grantflow.repositories.program_repository import ProgramRepository
from grantflow.services.notification_service import Notification, NotificationOutbox, Notifier

logger = logging.getLogger(__name__)


def is_funding_failed(application: Application, program: Program, now: datetime) -> bool:
    funding_end = as_utc(program.funding_end_date)
    return not application.funding_successful and funding_end is not None and as_utc(now) > funding_end


def has_missed_milestone(milestones: Iterable[Milestone], now: datetime) -> bool:
    now = as_utc(now)
    return any(
        m.status == MilestoneStatus.PENDING.value and m.deadline is not None and as_utc(m.deadline) < now
        for m in milestones
    )


def can_reclaim(
    investment: Investment,
    application: Application,
    program: Program,
    milestones: Iterable[Milestone],
    now: datetime,
) -> bool:
    """A confirmed investment is reclaimable after a failed funding round or a missed milestone deadline."""
    if investment.status != InvestmentStatus.CONFIRMED.value:
        return False
    return is_funding_failed(application, program, now) or has_missed_milestone(milestones, now)


class ReclaimService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier | None = None):
        self.session_factory = session_factory
        self.notifier = notifier

    @staticmethod
    async def _load(db: AsyncSession, investment_id: int, *, for_update: bool = False):
        investment = await InvestmentRepository(db).get_by_id(investment_id, for_update=for_update)
        if not investment:
            raise NotFoundError(f"Investment {investment_id} not found")
        application = await ApplicationRepository(db).get_by_id(investment.application_id, for_update=for_update)
        if not application:
            raise NotFoundError(f"Application {investment.application_id} not found")
        program = await ProgramRepository(db).get_by_id(application.program_id)
        if not program:
            raise NotFoundError(f"Program {application.program_id} not found")
        milestones = await MilestoneRepository(db).list_by_application(application.id)
        return investment, application, program, milestones

    async def can_reclaim_investment(self, investment_id: int, actor_id: int, now: datetime | None = None) -> bool:
        now = now or utcnow()
        async with self.session_factory() as db:
            investment, application, program, milestones = await self._load(db, investment_id)
            if investment.user_id != actor_id:
                return False
            return can_reclaim(investment, application, program, milestones, now)

    async def reclaim_investment(
        self,
        investment_id: int,
        actor_id: int,
        tx_hash: str | None = None,
        now: datetime | None = None,
    ) -> Investment:
        now = now or utcnow()
        outbox = NotificationOutbox()

        async def _reclaim(db: AsyncSession) -> Investment:
            outbox.clear()
            investment, application, program, milestones = await self._load(db, investment_id, for_update=True)
            if investment.user_id != actor_id:
                raise AuthorizationError("You can only reclaim your own investments")
            if investment.status == InvestmentStatus.REFUNDED.value:
                raise AlreadyProcessedError("Investment has already been refunded")
            if investment.status != InvestmentStatus.CONFIRMED.value:
                raise InvariantViolationError("Only confirmed investments can be reclaimed")
            if not can_reclaim(investment, application, program, milestones, now):
                funding_end = as_utc(program.funding_end_date)
                if not application.funding_successful and funding_end is not None:
                    raise WindowClosedError(
                        "Investment can be reclaimed once the funding period has ended without success "
                        "or a milestone deadline has been missed",
                        boundary=funding_end,
                    )
                raise InvariantViolationError(
                    "Investment is not eligible for reclaim: funding succeeded and no milestone deadline was missed"
                )

            investment.status = InvestmentStatus.REFUNDED.value
            investment.reclaim_tx_hash = tx_hash
            investment.reclaimed_at = as_utc(now)
            await db.flush()
            application.funded_amount = str(MoneyAmount.sum(
                await InvestmentRepository(db).list_confirmed_amounts(application.id)
            ))
            ApplicationRepository(db).touch(application)
            await db.flush()

            outbox.add(Notification(
                type="application",
                action="completed",
                recipient_id=application.applicant_id,
                entity_id=application.id,
                metadata={
                    "investmentId": investment.id,
                    "amount": investment.amount,
                    "action": "refunded",
                    "reclaimTxHash": tx_hash,
                },
            ))
            return investment

        investment = await run_in_transaction(self.session_factory, _reclaim)
        logger.info("Investment %s reclaimed by user %s", investment_id, actor_id)
        await outbox.flush(self.notifier)
        return investment
