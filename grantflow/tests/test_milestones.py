"""
Tests for milestone creation, percentage updates and the review workflow
"""
import asyncio

import pytest

from grantflow.core.errors import AuthorizationError, InvariantViolationError, NotFoundError
from grantflow.models.application import Application, ApplicationStatus
from grantflow.models.milestone import Milestone, MilestoneStatus
from grantflow.services.milestone_service import MilestoneService


async def _reload(session_factory, model, pk):
    async with session_factory() as db:
        return await db.get(model, pk)


@pytest.mark.integration
@pytest.mark.asyncio
class TestCreateMilestones:
    async def test_create_and_price(self, session_factory, notifier, make_program, make_application, applicant, validator):
        program = await make_program()
        application = await make_application(program, price="5000")
        service = MilestoneService(session_factory, notifier)

        created = await service.create_milestones(application.id, applicant.id, [
            {"title": "Design", "percentage": "40"},
            {"title": "Build", "percentage": "30"},
            {"title": "Launch"},
        ])

        assert [m.sort_order for m in created] == [0, 1, 2]
        assert [m.price for m in created] == ["2000", "1500", "0"]
        assert notifier.payloads[-1].recipient_id == validator.id

    async def test_create_over_hundred(self, session_factory, make_program, make_application, applicant):
        program = await make_program()
        application = await make_application(program)
        service = MilestoneService(session_factory)
        with pytest.raises(InvariantViolationError):
            await service.create_milestones(application.id, applicant.id, [
                {"title": "A", "percentage": "60"},
                {"title": "B", "percentage": "41"},
            ])
        assert await service.list_milestones(application.id) == []

    async def test_appends_after_existing(self, session_factory, make_program, make_application, make_milestone, applicant):
        program = await make_program()
        application = await make_application(program)
        await make_milestone(application, sort_order=0, percentage="90")
        service = MilestoneService(session_factory)

        with pytest.raises(InvariantViolationError):
            await service.create_milestones(application.id, applicant.id, [{"title": "B", "percentage": "20"}])
        created = await service.create_milestones(application.id, applicant.id, [{"title": "B", "percentage": "10"}])
        assert created[0].sort_order == 1

    async def test_only_applicant_creates(self, session_factory, make_program, make_application, investor):
        program = await make_program()
        application = await make_application(program)
        with pytest.raises(AuthorizationError):
            await MilestoneService(session_factory).create_milestones(application.id, investor.id, [{"title": "A"}])


@pytest.mark.integration
@pytest.mark.asyncio
class TestUpdateMilestone:
    async def test_percentage_update_scenario(self, session_factory, make_program, make_application, make_milestone, applicant):
        program = await make_program()
        application = await make_application(program, price="5000")
        await make_milestone(application, sort_order=0, percentage="40", price="2000")
        await make_milestone(application, sort_order=1, percentage="30", price="1500")
        third = await make_milestone(application, sort_order=2)
        service = MilestoneService(session_factory)

        with pytest.raises(InvariantViolationError):
            await service.update_milestone(third.id, applicant.id, {"percentage": "40"})
        unchanged = await _reload(session_factory, Milestone, third.id)
        assert unchanged.percentage is None
        assert unchanged.price == "0"

        updated = await service.update_milestone(third.id, applicant.id, {"percentage": "30"})
        assert updated.percentage == "30"
        assert updated.price == "1500"

    async def test_concurrent_updates_keep_ceiling(
        self, session_factory, make_program, make_application, make_milestone, applicant
    ):
        program = await make_program()
        application = await make_application(program, price="1000")
        first = await make_milestone(application, sort_order=0, percentage="20")
        second = await make_milestone(application, sort_order=1, percentage="20")
        service = MilestoneService(session_factory)

        results = await asyncio.gather(
            service.update_milestone(first.id, applicant.id, {"percentage": "60"}),
            service.update_milestone(second.id, applicant.id, {"percentage": "60"}),
            return_exceptions=True,
        )

        assert sum(isinstance(r, Milestone) for r in results) == 1
        assert sum(isinstance(r, InvariantViolationError) for r in results) == 1
        milestones = await service.list_milestones(application.id)
        assert sum(int(m.percentage) for m in milestones) == 80

    async def test_applicant_cannot_change_status(self, session_factory, make_program, make_application, make_milestone, applicant):
        program = await make_program()
        application = await make_application(program)
        milestone = await make_milestone(application)
        with pytest.raises(AuthorizationError):
            await MilestoneService(session_factory).update_milestone(
                milestone.id, applicant.id, {"status": MilestoneStatus.COMPLETED.value}
            )

    async def test_unknown_milestone(self, session_factory, applicant):
        with pytest.raises(NotFoundError):
            await MilestoneService(session_factory).update_milestone(123, applicant.id, {"title": "x"})


@pytest.mark.integration
@pytest.mark.asyncio
class TestMilestoneReview:
    async def test_submit_and_complete_in_order(
        self, session_factory, notifier, make_program, make_application, make_milestone, applicant, validator
    ):
        program = await make_program()
        application = await make_application(program)
        first = await make_milestone(application, title="First", sort_order=0)
        second = await make_milestone(application, title="Second", sort_order=1)
        service = MilestoneService(session_factory, notifier)

        await service.submit_milestone(second.id, applicant.id)
        with pytest.raises(InvariantViolationError, match="'First'"):
            await service.check_milestone(second.id, validator.id, MilestoneStatus.COMPLETED.value)

        submitted = await service.submit_milestone(first.id, applicant.id, "Delivered the design")
        assert submitted.status == MilestoneStatus.SUBMITTED.value
        assert notifier.payloads[-1].recipient_id == validator.id

        await service.check_milestone(first.id, validator.id, MilestoneStatus.COMPLETED.value)
        assert notifier.payloads[-1].action == "accepted"
        assert (await _reload(session_factory, Application, application.id)).status == ApplicationStatus.ACCEPTED.value

        await service.check_milestone(second.id, validator.id, MilestoneStatus.COMPLETED.value)
        assert (await _reload(session_factory, Application, application.id)).status == ApplicationStatus.COMPLETED.value

        with pytest.raises(InvariantViolationError):
            await service.update_milestone(first.id, applicant.id, {"title": "Too late"})

    async def test_revision_requested_can_be_resubmitted(
        self, session_factory, make_program, make_application, make_milestone, applicant, host
    ):
        program = await make_program()
        application = await make_application(program)
        milestone = await make_milestone(application)
        service = MilestoneService(session_factory)

        await service.submit_milestone(milestone.id, applicant.id)
        revised = await service.check_milestone(milestone.id, host.id, MilestoneStatus.REVISION_REQUESTED.value)
        assert revised.status == MilestoneStatus.REVISION_REQUESTED.value
        resubmitted = await service.submit_milestone(milestone.id, applicant.id)
        assert resubmitted.status == MilestoneStatus.SUBMITTED.value

        with pytest.raises(InvariantViolationError):
            await service.submit_milestone(milestone.id, applicant.id)

    async def test_only_reviewers_check(self, session_factory, make_program, make_application, make_milestone, applicant):
        program = await make_program()
        application = await make_application(program)
        milestone = await make_milestone(application)
        with pytest.raises(AuthorizationError):
            await MilestoneService(session_factory).check_milestone(
                milestone.id, applicant.id, MilestoneStatus.COMPLETED.value
            )

    async def test_check_requires_submission(self, session_factory, make_program, make_application, make_milestone, validator):
        program = await make_program()
        application = await make_application(program)
        milestone = await make_milestone(application)
        with pytest.raises(InvariantViolationError, match="submitted"):
            await MilestoneService(session_factory).check_milestone(
                milestone.id, validator.id, MilestoneStatus.COMPLETED.value
            )
        assert (await _reload(session_factory, Milestone, milestone.id)).status == MilestoneStatus.PENDING.value

    async def test_completed_cannot_reopen_before_later(
        self, session_factory, make_program, make_application, make_milestone, applicant, validator
    ):
        program = await make_program()
        application = await make_application(program)
        first = await make_milestone(application, title="First", sort_order=0)
        second = await make_milestone(application, title="Second", sort_order=1)
        await make_milestone(application, title="Third", sort_order=2)
        service = MilestoneService(session_factory)

        for milestone in (first, second):
            await service.submit_milestone(milestone.id, applicant.id)
            await service.check_milestone(milestone.id, validator.id, MilestoneStatus.COMPLETED.value)

        for status in (MilestoneStatus.PENDING.value, MilestoneStatus.FAILED.value):
            with pytest.raises(InvariantViolationError, match="'Second'"):
                await service.update_milestone(first.id, validator.id, {"status": status})
        assert (await _reload(session_factory, Milestone, first.id)).status == MilestoneStatus.COMPLETED.value

        reopened = await service.update_milestone(second.id, validator.id, {"status": MilestoneStatus.PENDING.value})
        assert reopened.status == MilestoneStatus.PENDING.value
        assert (await _reload(session_factory, Application, application.id)).status == ApplicationStatus.ACCEPTED.value
