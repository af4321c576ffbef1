"""Funding-cap and tier-limit rules for investments.

The checks are pure; ``InvestmentService`` runs them, in order, against
aggregates read inside the same locked transaction that inserts the row.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.core.clock import as_utc, isoformat_utc, utcnow
from grantflow.core.errors import (
    AlreadyProcessedError,
    AuthorizationError,
    InvariantViolationError,
    LimitExceededError,
    NotFoundError,
    WindowClosedError,
)
from grantflow.core.money import MoneyAmount
from grantflow.db.session import run_in_transaction
from grantflow.models.application import Application, ApplicationStatus
from grantflow.models.investment import Investment, InvestmentStatus
from grantflow.models.program import FundingCondition, Program, ProgramType
from grantflow.models.tier_assignment import TierAssignment
from grantflow.repositories.application_repository import ApplicationRepository
from grantflow.repositories.investment_repository import InvestmentRepository
from grantflow.repositories.program_repository import ProgramRepository
from grantflow.repositories.tier_repository import TierRepository
from grantflow.services.notification_service import Notification, NotificationOutbox, Notifier
from grantflow.services.program_phase import can_invest

logger = logging.getLogger(__name__)


def ensure_investable(program: Program | None, application: Application) -> None:
    if program is None:
        raise NotFoundError("Program not found")
    if program.type != ProgramType.FUNDING.value:
        raise InvariantViolationError("Application is not part of a funding program")
    if application.status != ApplicationStatus.ACCEPTED.value:
        raise InvariantViolationError("Only accepted applications can receive investments")


def ensure_funding_window(program: Program, now: datetime) -> None:
    if can_invest(program, now):
        return
    now = as_utc(now)
    funding_start = as_utc(program.funding_start_date)
    funding_end = as_utc(program.funding_end_date)
    if funding_start and now < funding_start:
        raise WindowClosedError(
            f"Funding period has not started yet. It opens at {isoformat_utc(funding_start)}",
            boundary=funding_start,
        )
    if funding_end and now > funding_end:
        raise WindowClosedError(
            f"Funding period has ended at {isoformat_utc(funding_end)}",
            boundary=funding_end,
        )
    raise WindowClosedError("Investments are not currently being accepted")


def ensure_within_funding_cap(
    program: Program,
    application: Application,
    confirmed_total: MoneyAmount,
    amount: MoneyAmount,
) -> None:
    if not program.max_funding_amount or not application.funding_target:
        return
    target = MoneyAmount.parse(application.funding_target, field="funding target")
    if confirmed_total + amount > target:
        remaining = target - confirmed_total
        if remaining.is_negative():
            remaining = MoneyAmount.zero()
        raise LimitExceededError(
            f"Investment would exceed funding target. Remaining capacity: {remaining}"
        )


def ensure_within_tier_limit(
    tier_assignment: TierAssignment | None,
    investor_confirmed_total: MoneyAmount,
    amount: MoneyAmount,
) -> str:
    """Return the investor's tier or raise when the tier limit would be exceeded."""
    if tier_assignment is None:
        raise AuthorizationError(
            "You are not assigned to any tier for this program. "
            "Please contact the program creator to get tier access."
        )
    max_amount = MoneyAmount.parse(tier_assignment.max_investment_amount, field="tier limit")
    if amount > max_amount:
        raise LimitExceededError(f"Investment exceeds your tier limit of {max_amount}")
    if investor_confirmed_total + amount > max_amount:
        raise LimitExceededError(f"Total investments would exceed your tier limit of {max_amount}")
    return tier_assignment.tier


def ensure_tier_purchase_available(purchase_limit: int | None, purchase_count: int, tier: str) -> None:
    if purchase_limit is not None and purchase_count >= purchase_limit:
        raise LimitExceededError(
            f"Investment tier '{tier}' has reached its purchase limit of {purchase_limit}"
        )


@dataclass(frozen=True)
class FundingProgress:
    current_amount: MoneyAmount
    target_amount: MoneyAmount | None
    percentage: Decimal


def calculate_funding_progress(confirmed_total: MoneyAmount, target) -> FundingProgress:
    if not target:
        return FundingProgress(current_amount=confirmed_total, target_amount=None, percentage=Decimal("0.00"))
    target_amount = MoneyAmount.parse(target, field="funding target")
    if not target_amount.is_positive():
        return FundingProgress(current_amount=confirmed_total, target_amount=target_amount, percentage=Decimal("0.00"))
    ratio = (confirmed_total * 100 / target_amount).value
    percentage = min(ratio, Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return FundingProgress(current_amount=confirmed_total, target_amount=target_amount, percentage=percentage)


class InvestmentService:
    """Records investments while keeping the funding cap and tier limits intact."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier | None = None):
        self.session_factory = session_factory
        self.notifier = notifier

    async def _check_limits(
        self,
        db: AsyncSession,
        program: Program,
        application: Application,
        investor_id: int,
        amount: MoneyAmount,
    ) -> tuple[str | None, MoneyAmount]:
        """Funding-cap, tier and purchase-limit checks; returns (tier, confirmed total)."""
        investments = InvestmentRepository(db)
        confirmed_total = MoneyAmount.sum(await investments.list_confirmed_amounts(application.id))
        ensure_within_funding_cap(program, application, confirmed_total, amount)

        tier = None
        if program.funding_condition == FundingCondition.TIER.value:
            tiers = TierRepository(db)
            assignment = await tiers.get_assignment(program.id, investor_id)
            investor_total = MoneyAmount.sum(
                await investments.list_confirmed_amounts(application.id, user_id=investor_id)
            ) if assignment else MoneyAmount.zero()
            tier = ensure_within_tier_limit(assignment, investor_total, amount)

            term = await tiers.get_term_for_tier(application.id, tier)
            if term is not None and term.purchase_limit is not None:
                count = await investments.count_confirmed_by_tier(application.id, tier)
                ensure_tier_purchase_available(term.purchase_limit, count, tier)
        return tier, confirmed_total

    async def record_investment(
        self,
        application_id: int,
        investor_id: int,
        amount,
        tx_hash: str | None = None,
        investment_term_id: int | None = None,
        now: datetime | None = None,
    ) -> Investment:
        amount = MoneyAmount.parse(amount)
        if not amount.is_positive():
            raise InvariantViolationError("Investment amount must be greater than zero")
        now = now or utcnow()
        outbox = NotificationOutbox()

        async def _record(db: AsyncSession) -> Investment:
            outbox.clear()
            # Row lock on the application serializes writers of its confirmed total
            application = await ApplicationRepository(db).get_by_id(application_id, for_update=True)
            if not application:
                raise NotFoundError(f"Application {application_id} not found")
            program = await ProgramRepository(db).get_by_id(application.program_id)
            ensure_investable(program, application)
            ensure_funding_window(program, now)

            tier, confirmed_total = await self._check_limits(db, program, application, investor_id, amount)

            status = InvestmentStatus.CONFIRMED.value if tx_hash else InvestmentStatus.PENDING.value
            investment = await InvestmentRepository(db).create(Investment(
                application_id=application.id,
                user_id=investor_id,
                amount=str(amount),
                tier=tier,
                investment_term_id=investment_term_id,
                tx_hash=tx_hash,
                status=status,
            ))
            if status == InvestmentStatus.CONFIRMED.value:
                application.funded_amount = str(confirmed_total + amount)
                ApplicationRepository(db).touch(application)
                await db.flush()

            outbox.add(Notification(
                type="application",
                action="created",
                recipient_id=application.applicant_id,
                entity_id=application.id,
                metadata={"investmentId": investment.id, "amount": str(amount), "investorId": investor_id},
            ))
            return investment

        investment = await run_in_transaction(self.session_factory, _record)
        logger.info(
            "Recorded %s investment %s of %s in application %s by user %s",
            investment.status, investment.id, investment.amount, application_id, investor_id,
        )
        await outbox.flush(self.notifier)
        return investment

    async def confirm_investment(
        self, investment_id: int, actor_id: int, tx_hash: str, now: datetime | None = None
    ) -> Investment:
        """Attach the chain transaction hash to a pending investment and confirm it."""
        if not tx_hash:
            raise InvariantViolationError("A transaction hash is required to confirm an investment")
        now = now or utcnow()
        outbox = NotificationOutbox()

        async def _confirm(db: AsyncSession) -> Investment:
            outbox.clear()
            investment = await InvestmentRepository(db).get_by_id(investment_id, for_update=True)
            if not investment:
                raise NotFoundError(f"Investment {investment_id} not found")
            if investment.user_id != actor_id:
                raise AuthorizationError("You can only confirm your own investments")
            if investment.status != InvestmentStatus.PENDING.value:
                raise AlreadyProcessedError(f"Investment is already {investment.status}")

            application = await ApplicationRepository(db).get_by_id(investment.application_id, for_update=True)
            if not application:
                raise NotFoundError(f"Application {investment.application_id} not found")
            program = await ProgramRepository(db).get_by_id(application.program_id)
            ensure_investable(program, application)
            ensure_funding_window(program, now)

            amount = MoneyAmount.parse(investment.amount)
            _, confirmed_total = await self._check_limits(db, program, application, actor_id, amount)

            investment.status = InvestmentStatus.CONFIRMED.value
            investment.tx_hash = tx_hash
            application.funded_amount = str(confirmed_total + amount)
            ApplicationRepository(db).touch(application)
            await db.flush()

            outbox.add(Notification(
                type="application",
                action="updated",
                recipient_id=application.applicant_id,
                entity_id=application.id,
                metadata={"investmentId": investment.id, "amount": investment.amount, "action": "confirmed"},
            ))
            return investment

        investment = await run_in_transaction(self.session_factory, _confirm)
        logger.info("Confirmed investment %s", investment_id)
        await outbox.flush(self.notifier)
        return investment

    async def settle_funding(self, program_id: int, actor_id: int, now: datetime | None = None) -> list[Application]:
        """Record, per application, whether its funding target was reached once funding has ended."""
        now = now or utcnow()
        outbox = NotificationOutbox()

        async def _settle(db: AsyncSession) -> list[Application]:
            outbox.clear()
            program = await ProgramRepository(db).get_by_id(program_id, for_update=True)
            if not program:
                raise NotFoundError(f"Program {program_id} not found")
            if program.creator_id != actor_id:
                raise AuthorizationError("Only the program host can settle funding results")
            funding_end = as_utc(program.funding_end_date)
            if funding_end is None:
                raise WindowClosedError("Program does not have a funding end date")
            if as_utc(now) <= funding_end:
                raise WindowClosedError(
                    f"Funding period ends at {isoformat_utc(funding_end)}", boundary=funding_end
                )

            applications = await ApplicationRepository(db).list_by_program(program_id, for_update=True)
            investments = InvestmentRepository(db)
            for application in applications:
                raised = MoneyAmount.sum(await investments.list_confirmed_amounts(application.id))
                if application.funding_target:
                    successful = raised >= MoneyAmount.parse(application.funding_target, field="funding target")
                else:
                    successful = raised.is_positive()
                application.funding_successful = successful
                application.funded_amount = str(raised)
                ApplicationRepository(db).touch(application)
                outbox.add(Notification(
                    type="application",
                    action="completed" if successful else "failed",
                    recipient_id=application.applicant_id,
                    entity_id=application.id,
                    metadata={"raised": str(raised), "fundingSuccessful": successful},
                ))
            await db.flush()
            return applications

        applications = await run_in_transaction(self.session_factory, _settle)
        logger.info("Settled funding for %s applications of program %s", len(applications), program_id)
        await outbox.flush(self.notifier)
        return applications

    async def get_funding_progress(self, application_id: int) -> FundingProgress:
        async with self.session_factory() as db:
            application = await ApplicationRepository(db).get_by_id(application_id)
            if not application:
                raise NotFoundError(f"Application {application_id} not found")
            confirmed_total = MoneyAmount.sum(await InvestmentRepository(db).list_confirmed_amounts(application_id))
            return calculate_funding_progress(confirmed_total, application.funding_target or application.price)
