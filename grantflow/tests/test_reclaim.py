"""
Tests for reclaim eligibility and the refund flow
"""
import asyncio
from datetime import datetime, timedelta

import pytest

from grantflow.core.errors import (
    AlreadyProcessedError,
    AuthorizationError,
    InvariantViolationError,
    NotFoundError,
    WindowClosedError,
)
from grantflow.models.application import Application
from grantflow.models.investment import Investment, InvestmentStatus
from grantflow.models.milestone import Milestone, MilestoneStatus
from grantflow.models.program import Program
from grantflow.services.reclaim_service import ReclaimService, can_reclaim

from conftest import FUNDING_END, NOW

AFTER_FUNDING = FUNDING_END + timedelta(seconds=1)


def _entities(status=InvestmentStatus.CONFIRMED.value, funding_successful=False):
    program = Program(name="p", funding_end_date=FUNDING_END, creator_id=1)
    application = Application(name="a", program_id=1, applicant_id=2, funding_successful=funding_successful)
    investment = Investment(application_id=1, user_id=3, amount="10", status=status)
    return investment, application, program


class TestCanReclaim:
    def test_failed_funding_after_end(self):
        investment, application, program = _entities()
        assert can_reclaim(investment, application, program, [], AFTER_FUNDING)

    def test_failed_funding_before_end(self):
        investment, application, program = _entities()
        assert not can_reclaim(investment, application, program, [], FUNDING_END)

    def test_successful_funding_without_missed_milestone(self):
        investment, application, program = _entities(funding_successful=True)
        milestones = [Milestone(status=MilestoneStatus.PENDING.value, deadline=datetime(2024, 9, 1))]
        assert not can_reclaim(investment, application, program, milestones, datetime(2024, 8, 1))

    def test_missed_milestone_deadline(self):
        investment, application, program = _entities(funding_successful=True)
        milestones = [
            Milestone(status=MilestoneStatus.COMPLETED.value, deadline=datetime(2024, 7, 1)),
            Milestone(status=MilestoneStatus.PENDING.value, deadline=datetime(2024, 7, 15)),
        ]
        assert can_reclaim(investment, application, program, milestones, datetime(2024, 8, 1))

    def test_submitted_milestone_past_deadline_is_not_missed(self):
        investment, application, program = _entities(funding_successful=True)
        milestones = [Milestone(status=MilestoneStatus.SUBMITTED.value, deadline=datetime(2024, 7, 15))]
        assert not can_reclaim(investment, application, program, milestones, datetime(2024, 8, 1))

    @pytest.mark.parametrize("status", [InvestmentStatus.PENDING.value, InvestmentStatus.REFUNDED.value])
    def test_only_confirmed_investments(self, status):
        investment, application, program = _entities(status=status)
        assert not can_reclaim(investment, application, program, [], AFTER_FUNDING)


@pytest.mark.integration
@pytest.mark.asyncio
class TestReclaimService:
    async def test_reclaim_then_reclaim_again(
        self, session_factory, notifier, make_program, make_application, make_investment, investor, applicant
    ):
        program = await make_program()
        application = await make_application(program)
        investment = await make_investment(application, investor, "250")
        service = ReclaimService(session_factory, notifier)

        assert await service.can_reclaim_investment(investment.id, investor.id, now=AFTER_FUNDING)
        refunded = await service.reclaim_investment(investment.id, investor.id, "0xrefund", now=AFTER_FUNDING)

        assert refunded.status == InvestmentStatus.REFUNDED.value
        assert refunded.reclaim_tx_hash == "0xrefund"
        assert refunded.reclaimed_at == AFTER_FUNDING
        payload = notifier.payloads[-1]
        assert payload.recipient_id == applicant.id
        assert payload.metadata["action"] == "refunded"

        with pytest.raises(AlreadyProcessedError):
            await service.reclaim_investment(investment.id, investor.id, "0xagain", now=AFTER_FUNDING)
        assert not await service.can_reclaim_investment(investment.id, investor.id, now=AFTER_FUNDING)

        async with session_factory() as db:
            stored = await db.get(Application, application.id)
            assert stored.funded_amount == "0"

    async def test_concurrent_reclaims_refund_once(
        self, session_factory, make_program, make_application, make_investment, investor
    ):
        program = await make_program()
        application = await make_application(program)
        investment = await make_investment(application, investor, "250")
        service = ReclaimService(session_factory)

        results = await asyncio.gather(
            service.reclaim_investment(investment.id, investor.id, "0x1", now=AFTER_FUNDING),
            service.reclaim_investment(investment.id, investor.id, "0x2", now=AFTER_FUNDING),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Investment) for r in results) == 1
        assert sum(isinstance(r, AlreadyProcessedError) for r in results) == 1

    async def test_only_owner_reclaims(
        self, session_factory, make_program, make_application, make_investment, investor, second_investor
    ):
        program = await make_program()
        application = await make_application(program)
        investment = await make_investment(application, investor, "250")
        service = ReclaimService(session_factory)

        assert not await service.can_reclaim_investment(investment.id, second_investor.id, now=AFTER_FUNDING)
        with pytest.raises(AuthorizationError):
            await service.reclaim_investment(investment.id, second_investor.id, now=AFTER_FUNDING)

    async def test_pending_investment(self, session_factory, make_program, make_application, make_investment, investor):
        program = await make_program()
        application = await make_application(program)
        investment = await make_investment(application, investor, "250", status=InvestmentStatus.PENDING.value)
        with pytest.raises(InvariantViolationError):
            await ReclaimService(session_factory).reclaim_investment(investment.id, investor.id, now=AFTER_FUNDING)

    async def test_before_funding_ends(self, session_factory, make_program, make_application, make_investment, investor):
        program = await make_program()
        application = await make_application(program)
        investment = await make_investment(application, investor, "250")
        with pytest.raises(WindowClosedError) as exc_info:
            await ReclaimService(session_factory).reclaim_investment(investment.id, investor.id, now=NOW)
        assert exc_info.value.boundary == FUNDING_END

    async def test_successful_funding_is_not_reclaimable(
        self, session_factory, make_program, make_application, make_investment, investor
    ):
        program = await make_program()
        application = await make_application(program, funding_successful=True)
        investment = await make_investment(application, investor, "250")
        with pytest.raises(InvariantViolationError):
            await ReclaimService(session_factory).reclaim_investment(investment.id, investor.id, now=AFTER_FUNDING)

    async def test_missed_milestone_allows_reclaim(
        self, session_factory, make_program, make_application, make_milestone, make_investment, investor
    ):
        program = await make_program()
        application = await make_application(program, funding_successful=True)
        await make_milestone(application, deadline=datetime(2024, 7, 10))
        investment = await make_investment(application, investor, "250")

        refunded = await ReclaimService(session_factory).reclaim_investment(
            investment.id, investor.id, now=datetime(2024, 7, 11)
        )
        assert refunded.status == InvestmentStatus.REFUNDED.value

    async def test_unknown_investment(self, session_factory, investor):
        with pytest.raises(NotFoundError):
            await ReclaimService(session_factory).reclaim_investment(404, investor.id, now=AFTER_FUNDING)
