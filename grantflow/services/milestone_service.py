import logging
from dataclasses import dataclass
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from grantflow.core.clock import as_utc
from grantflow.core.errors import AuthorizationError, InvariantViolationError, NotFoundError
from grantflow.db.session import run_in_transaction
from grantflow.models.application import Application, ApplicationStatus
from grantflow.models.milestone import Milestone, MilestoneStatus
from grantflow.models.program import Program
from grantflow.repositories.application_repository import ApplicationRepository
from grantflow.repositories.milestone_repository import MilestoneRepository
from grantflow.repositories.program_repository import ProgramRepository
from grantflow.services.milestone_allocation import (
    compute_milestone_price,
    validate_and_price,
    validate_percentages,
)
from grantflow.services.notification_service import Notification, NotificationOutbox, Notifier

logger = logging.getLogger(__name__)

REVIEW_STATUSES = {
    MilestoneStatus.COMPLETED.value,
    MilestoneStatus.REVISION_REQUESTED.value,
    MilestoneStatus.FAILED.value,
    MilestoneStatus.PENDING.value,
}
SUBMITTABLE_STATUSES = {MilestoneStatus.PENDING.value, MilestoneStatus.REVISION_REQUESTED.value}


@dataclass
class _MilestoneContext:
    milestone: Milestone
    application: Application
    program: Program


class MilestoneService:
    """Milestone creation, percentage updates and the submit/review workflow."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], notifier: Notifier | None = None):
        self.session_factory = session_factory
        self.notifier = notifier

    async def _load_application(self, db: AsyncSession, application_id: int) -> tuple[Application, Program]:
        application = await ApplicationRepository(db).get_by_id(application_id, for_update=True)
        if not application:
            raise NotFoundError(f"Application {application_id} not found")
        program = await ProgramRepository(db).get_by_id(application.program_id)
        if not program:
            raise NotFoundError(f"Program {application.program_id} not found")
        return application, program

    async def _load_context(self, db: AsyncSession, milestone_id: int) -> _MilestoneContext:
        milestone = await MilestoneRepository(db).get_by_id(milestone_id)
        if not milestone:
            raise NotFoundError(f"Milestone {milestone_id} not found")
        # Lock the owning application so concurrent edits of sibling milestones serialize
        application, program = await self._load_application(db, milestone.application_id)
        return _MilestoneContext(milestone=milestone, application=application, program=program)

    @staticmethod
    def _ensure_mutable(application: Application) -> None:
        if application.status == ApplicationStatus.COMPLETED.value:
            raise InvariantViolationError("Milestones of a completed application can no longer be changed")

    @staticmethod
    def _is_reviewer(program: Program, actor_id: int) -> bool:
        return actor_id in {program.creator_id, program.validator_id}

    async def _ensure_previous_completed(self, db: AsyncSession, milestone: Milestone) -> None:
        """Every milestone ordered before ``milestone`` must already be completed."""
        siblings = await MilestoneRepository(db).list_by_application(milestone.application_id)
        blocking = [
            m for m in siblings
            if m.sort_order < milestone.sort_order and m.status != MilestoneStatus.COMPLETED.value
        ]
        if blocking:
            titles = ", ".join(f"'{m.title}'" for m in blocking)
            raise InvariantViolationError(
                f"Milestone '{milestone.title}' cannot be completed before {titles}"
            )

    async def _ensure_no_later_completed(self, db: AsyncSession, milestone: Milestone) -> None:
        """A completed milestone cannot be reopened while a later one stays completed."""
        siblings = await MilestoneRepository(db).list_by_application(milestone.application_id)
        later = [
            m for m in siblings
            if m.sort_order > milestone.sort_order and m.status == MilestoneStatus.COMPLETED.value
        ]
        if later:
            titles = ", ".join(f"'{m.title}'" for m in later)
            raise InvariantViolationError(
                f"Milestone '{milestone.title}' cannot be reopened while {titles} is completed"
            )

    async def _complete_application_if_done(self, db: AsyncSession, application: Application) -> bool:
        milestones = await MilestoneRepository(db).list_by_application(application.id)
        if milestones and all(m.status == MilestoneStatus.COMPLETED.value for m in milestones):
            application.status = ApplicationStatus.COMPLETED.value
            return True
        return False

    async def create_milestones(self, application_id: int, actor_id: int, items: list[dict[str, Any]]) -> list[Milestone]:
        """Append milestones to an application, keeping the percentage ceiling."""
        outbox = NotificationOutbox()

        async def _create(db: AsyncSession) -> list[Milestone]:
            outbox.clear()
            application, program = await self._load_application(db, application_id)
            if application.applicant_id != actor_id:
                raise AuthorizationError("Only the applicant can add milestones to this application")
            self._ensure_mutable(application)
            if not items:
                raise InvariantViolationError("At least one milestone is required")

            repository = MilestoneRepository(db)
            existing = await repository.list_by_application(application_id)
            validate_percentages([m.percentage for m in existing] + [item.get("percentage") for item in items])

            next_order = (await repository.max_sort_order(application_id))
            next_order = 0 if next_order is None else next_order + 1
            created = []
            for item in items:
                percentage = item.get("percentage")
                milestone = Milestone(
                    application_id=application_id,
                    title=item["title"],
                    description=item.get("description"),
                    deadline=as_utc(item.get("deadline")),
                    percentage=str(percentage) if percentage is not None else None,
                    price=str(compute_milestone_price(application.price, percentage)),
                    sort_order=next_order,
                    status=MilestoneStatus.PENDING.value,
                )
                created.append(await repository.create(milestone))
                next_order += 1

            ApplicationRepository(db).touch(application)
            if program.validator_id:
                outbox.add(Notification(
                    type="application",
                    action="created",
                    recipient_id=program.validator_id,
                    entity_id=application.id,
                    metadata={"milestoneIds": [m.id for m in created]},
                ))
            return created

        milestones = await run_in_transaction(self.session_factory, _create)
        logger.info("Created %s milestones for application %s", len(milestones), application_id)
        await outbox.flush(self.notifier)
        return milestones

    async def update_milestone(self, milestone_id: int, actor_id: int, changes: dict[str, Any]) -> Milestone:
        """
        Update a milestone. A percentage change is revalidated against the whole
        milestone set and the price recomputed in the same transaction; a status
        change to completed re-checks the completion order.
        """
        outbox = NotificationOutbox()

        async def _update(db: AsyncSession) -> Milestone:
            outbox.clear()
            ctx = await self._load_context(db, milestone_id)
            milestone, application, program = ctx.milestone, ctx.application, ctx.program
            is_reviewer = self._is_reviewer(program, actor_id)
            if application.applicant_id != actor_id and not is_reviewer:
                raise AuthorizationError("You are not allowed to update this milestone")
            self._ensure_mutable(application)

            if "percentage" in changes:
                siblings = await MilestoneRepository(db).list_by_application(application.id)
                allocation = validate_and_price(siblings, milestone.id, changes["percentage"], application.price)
                milestone.percentage = str(changes["percentage"]).strip()
                milestone.price = str(allocation.computed_price)

            for field in ("title", "description"):
                if changes.get(field) is not None:
                    setattr(milestone, field, changes[field])
            if changes.get("deadline") is not None:
                milestone.deadline = as_utc(changes["deadline"])

            new_status = changes.get("status")
            if new_status is not None and new_status != milestone.status:
                if not is_reviewer:
                    raise AuthorizationError("Only the program validator or host can change a milestone status")
                await self._apply_review_status(db, milestone, application, new_status, outbox)

            ApplicationRepository(db).touch(application)
            await db.flush()
            return milestone

        milestone = await run_in_transaction(self.session_factory, _update)
        logger.info("Updated milestone %s (%s)", milestone_id, ", ".join(sorted(changes)))
        await outbox.flush(self.notifier)
        return milestone

    async def _apply_review_status(
        self,
        db: AsyncSession,
        milestone: Milestone,
        application: Application,
        status: str,
        outbox: NotificationOutbox,
    ) -> None:
        if status not in REVIEW_STATUSES:
            raise InvariantViolationError(f"Unsupported milestone status '{status}'")
        if status == MilestoneStatus.COMPLETED.value:
            await self._ensure_previous_completed(db, milestone)
        elif milestone.status == MilestoneStatus.COMPLETED.value:
            await self._ensure_no_later_completed(db, milestone)
        milestone.status = status
        await db.flush()
        if status == MilestoneStatus.COMPLETED.value:
            await self._complete_application_if_done(db, application)
        outbox.add(Notification(
            type="milestone",
            action="accepted" if status == MilestoneStatus.COMPLETED.value else "rejected",
            recipient_id=application.applicant_id,
            entity_id=milestone.id,
            metadata={"status": status},
        ))

    async def submit_milestone(self, milestone_id: int, actor_id: int, description: str | None = None) -> Milestone:
        outbox = NotificationOutbox()

        async def _submit(db: AsyncSession) -> Milestone:
            outbox.clear()
            ctx = await self._load_context(db, milestone_id)
            milestone, application, program = ctx.milestone, ctx.application, ctx.program
            if application.applicant_id != actor_id:
                raise AuthorizationError("You are not allowed to submit this milestone")
            self._ensure_mutable(application)
            if milestone.status not in SUBMITTABLE_STATUSES:
                raise InvariantViolationError(
                    f"Milestone in status '{milestone.status}' cannot be submitted"
                )
            milestone.status = MilestoneStatus.SUBMITTED.value
            if description is not None:
                milestone.description = description
            ApplicationRepository(db).touch(application)
            await db.flush()
            reviewer_id = program.validator_id or program.creator_id
            outbox.add(Notification(
                type="milestone",
                action="submitted",
                recipient_id=reviewer_id,
                entity_id=milestone.id,
            ))
            return milestone

        milestone = await run_in_transaction(self.session_factory, _submit)
        logger.info("Milestone %s submitted by user %s", milestone_id, actor_id)
        await outbox.flush(self.notifier)
        return milestone

    async def check_milestone(self, milestone_id: int, actor_id: int, status: str) -> Milestone:
        """Reviewer decision on a submitted milestone."""
        outbox = NotificationOutbox()

        async def _check(db: AsyncSession) -> Milestone:
            outbox.clear()
            ctx = await self._load_context(db, milestone_id)
            if not self._is_reviewer(ctx.program, actor_id):
                raise AuthorizationError("You are not allowed to check this milestone")
            self._ensure_mutable(ctx.application)
            if ctx.milestone.status != MilestoneStatus.SUBMITTED.value:
                raise InvariantViolationError(
                    f"Only submitted milestones can be checked, this one is '{ctx.milestone.status}'"
                )
            await self._apply_review_status(db, ctx.milestone, ctx.application, status, outbox)
            ApplicationRepository(db).touch(ctx.application)
            await db.flush()
            return ctx.milestone

        milestone = await run_in_transaction(self.session_factory, _check)
        logger.info("Milestone %s checked by user %s -> %s", milestone_id, actor_id, status)
        await outbox.flush(self.notifier)
        return milestone

    async def list_milestones(self, application_id: int) -> list[Milestone]:
        async with self.session_factory() as db:
            return await MilestoneRepository(db).list_by_application(application_id)
