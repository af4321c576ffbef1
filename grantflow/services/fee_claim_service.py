"""Host fee claims.

The claimable amount is the program's fee percentage applied to every
confirmed investment in the program's applications. It is computed from
the investment records alone and is not reconciled against an on-chain ledger.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.core.clock import as_utc, isoformat_utc, utcnow
from grantflow.core.config import settings
from grantflow.core.errors import (
    AlreadyProcessedError,
    AuthorizationError,
    NotFoundError,
    WindowClosedError,
)
from grantflow.core.money import MoneyAmount
from grantflow.db.session import run_in_transaction
from grantflow.models.fee_claim import FeeClaim, FeeClaimStatus
from grantflow.models.program import Program
from grantflow.repositories.fee_claim_repository import FeeClaimRepository
from grantflow.repositories.investment_repository import InvestmentRepository
from grantflow.repositories.program_repository import ProgramRepository
from grantflow.services.notification_service import Notification, NotificationOutbox, Notifier
from grantflow.services.program_phase import pending_period_end

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClaimableFee:
    amount: MoneyAmount
    can_claim: bool
    reason: str | None = None
    fee_percentage: MoneyAmount | None = None
    pending_end_date: datetime | None = None
    claimed_at: datetime | None = None


def fee_percentage_of(program: Program) -> MoneyAmount:
    return MoneyAmount.parse(program.fee_percentage or settings.DEFAULT_FEE_PERCENTAGE, field="fee percentage")


def calculate_total_fees(amounts: Iterable, fee_percentage) -> MoneyAmount:
    """Sum of ``amount * fee_percentage / 100`` over the given amounts."""
    return MoneyAmount.sum(MoneyAmount.parse(amount).percent(fee_percentage) for amount in amounts)


def compute_claimable_fee(
    program: Program,
    confirmed_amounts: Iterable,
    host_id: int,
    now: datetime,
    existing_claim: FeeClaim | None = None,
) -> ClaimableFee:
    if program.creator_id != host_id:
        return ClaimableFee(amount=MoneyAmount.zero(), can_claim=False, reason="You are not the program host")

    pending_end = pending_period_end(program)
    if pending_end is None:
        return ClaimableFee(
            amount=MoneyAmount.zero(), can_claim=False, reason="Program does not have a funding end date"
        )
    if as_utc(now) < pending_end:
        return ClaimableFee(
            amount=MoneyAmount.zero(),
            can_claim=False,
            reason=f"Pending period ends at {isoformat_utc(pending_end)}",
            pending_end_date=pending_end,
        )

    if existing_claim is not None:
        return ClaimableFee(
            amount=MoneyAmount.parse(existing_claim.amount),
            can_claim=False,
            reason="Fees have already been claimed",
            claimed_at=existing_claim.claimed_at,
        )

    fee_percentage = fee_percentage_of(program)
    return ClaimableFee(
        amount=calculate_total_fees(confirmed_amounts, fee_percentage),
        can_claim=True,
        fee_percentage=fee_percentage,
    )


class FeeClaimService:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier | None = None):
        self.session_factory = session_factory
        self.notifier = notifier

    async def get_claimable_fees(self, program_id: int, host_id: int, now: datetime | None = None) -> ClaimableFee:
        now = now or utcnow()
        async with self.session_factory() as db:
            program = await ProgramRepository(db).get_by_id(program_id)
            if not program:
                raise NotFoundError(f"Program {program_id} not found")
            existing = await FeeClaimRepository(db).get_claimed(program_id, host_id)
            amounts = await InvestmentRepository(db).list_confirmed_amounts_for_program(program_id)
            return compute_claimable_fee(program, amounts, host_id, now, existing)

    async def claim_program_fees(
        self,
        program_id: int,
        actor_id: int,
        tx_hash: str | None = None,
        now: datetime | None = None,
    ) -> FeeClaim:
        now = now or utcnow()
        outbox = NotificationOutbox()

        async def _claim(db: AsyncSession) -> FeeClaim:
            outbox.clear()
            program = await ProgramRepository(db).get_by_id(program_id, for_update=True)
            if not program:
                raise NotFoundError(f"Program {program_id} not found")
            if program.creator_id != actor_id:
                raise AuthorizationError("Only the program host can claim fees")

            pending_end = pending_period_end(program)
            if pending_end is None:
                raise WindowClosedError("Program does not have a funding end date")
            if as_utc(now) < pending_end:
                raise WindowClosedError(
                    f"Cannot claim fees yet. Pending period ends at {isoformat_utc(pending_end)}",
                    boundary=pending_end,
                )

            fee_claims = FeeClaimRepository(db)
            if await fee_claims.get_claimed(program_id, actor_id):
                raise AlreadyProcessedError("Fees have already been claimed for this program")

            amounts = await InvestmentRepository(db).list_confirmed_amounts_for_program(program_id)
            total_fees = calculate_total_fees(amounts, fee_percentage_of(program))
            try:
                claim = await fee_claims.create(FeeClaim(
                    program_id=program_id,
                    claimed_by=actor_id,
                    amount=str(total_fees),
                    tx_hash=tx_hash,
                    status=FeeClaimStatus.CLAIMED.value,
                    claimed_at=as_utc(now),
                ))
            except IntegrityError as exc:
                raise AlreadyProcessedError("Fees have already been claimed for this program") from exc

            outbox.add(Notification(
                type="program",
                action="completed",
                recipient_id=actor_id,
                entity_id=program_id,
                metadata={"amount": str(total_fees), "txHash": tx_hash},
            ))
            return claim

        claim = await run_in_transaction(self.session_factory, _claim)
        logger.info("Program %s fees claimed by host %s: %s", program_id, actor_id, claim.amount)
        await outbox.flush(self.notifier)
        return claim
