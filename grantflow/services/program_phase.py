"""Program lifecycle phase derivation.

Pure functions of ``(program, now)``. A program's stored status only wins when
it is a manual override (cancelled / rejected) or when its dates are not
configured; otherwise the phase is derived from the four configured dates,
with the funding window taking priority over the application window.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Union

from grantflow.core.clock import as_utc
from grantflow.core.config import settings
from grantflow.models.program import ProgramStatus, ProgramType

OVERRIDE_STATUSES = {ProgramStatus.CANCELLED.value, ProgramStatus.REJECTED.value}
_MS = timedelta(milliseconds=1)


class Phase(str, Enum):
    READY = "Ready"
    APPLICATION_ONGOING = "Application ongoing"
    APPLICATION_CLOSED = "Application closed"
    FUNDING_ONGOING = "Funding ongoing"
    # The pending (fee claim) period keeps the published display status
    PUBLISHED = "published"
    PROJECT_ONGOING = "Project ongoing"
    PROGRAM_COMPLETED = "Program completed"


@dataclass(frozen=True)
class DerivedPhase:
    phase: Phase

    @property
    def value(self) -> str:
        return self.phase.value


@dataclass(frozen=True)
class OverriddenStatus:
    status: str

    @property
    def value(self) -> str:
        return self.status


ProgramPhase = Union[DerivedPhase, OverriddenStatus]


@dataclass(frozen=True)
class ProgramStatusDetail:
    phase: ProgramPhase
    current_phase: str
    is_in_application_period: bool = False
    is_in_funding_period: bool = False
    is_in_pending_period: bool = False
    has_date_overlap: bool = False
    overlap_duration_ms: int | None = None
    time_until_next_phase_ms: int | None = None

    @property
    def display_status(self) -> str:
        return self.phase.value


@dataclass(frozen=True)
class _Window:
    application_start: datetime
    application_end: datetime
    funding_start: datetime
    funding_end: datetime

    @property
    def pending_end(self) -> datetime:
        return self.funding_end + pending_period()


def pending_period() -> timedelta:
    return timedelta(hours=settings.PENDING_PERIOD_HOURS)


def _status_of(program) -> str:
    return program.status or ProgramStatus.DRAFT.value


def _window(program) -> _Window | None:
    dates = (
        as_utc(program.application_start_date),
        as_utc(program.application_end_date),
        as_utc(program.funding_start_date),
        as_utc(program.funding_end_date),
    )
    if any(d is None for d in dates):
        return None
    return _Window(*dates)


def pending_period_end(program) -> datetime | None:
    """End of the fee-claim pending period, or None when no funding end date is set."""
    funding_end = as_utc(program.funding_end_date)
    if funding_end is None:
        return None
    return funding_end + pending_period()


def get_program_detailed_status(program, now: datetime) -> ProgramStatusDetail:
    now = as_utc(now)
    status = _status_of(program)

    if program.type != ProgramType.FUNDING.value:
        return ProgramStatusDetail(phase=OverriddenStatus(status), current_phase=status)

    window = _window(program)
    if window is None:
        return ProgramStatusDetail(phase=OverriddenStatus(status), current_phase="Dates not configured")

    in_application = window.application_start <= now <= window.application_end
    in_funding = window.funding_start <= now <= window.funding_end
    in_pending = window.funding_end < now <= window.pending_end

    has_overlap = window.funding_start < window.application_end
    overlap_ms = None
    if has_overlap:
        overlap_end = min(window.application_end, window.funding_end)
        overlap_ms = max(0, (overlap_end - window.funding_start) // _MS)

    flags = dict(
        is_in_application_period=in_application,
        is_in_funding_period=in_funding,
        is_in_pending_period=in_pending,
        has_date_overlap=has_overlap,
        overlap_duration_ms=overlap_ms,
    )

    if status in OVERRIDE_STATUSES:
        return ProgramStatusDetail(phase=OverriddenStatus(status), current_phase=status, **flags)

    if now < window.application_start:
        phase, label, boundary = Phase.READY, "Before application period", window.application_start
    elif in_application and not in_funding:
        phase, label, boundary = Phase.APPLICATION_ONGOING, "Application period", window.application_end
    elif window.application_end < now < window.funding_start:
        phase, label, boundary = Phase.APPLICATION_CLOSED, "Between application and funding", window.funding_start
    elif in_funding:
        phase, label, boundary = Phase.FUNDING_ONGOING, "Funding period", window.funding_end
    elif in_pending:
        phase, label, boundary = Phase.PUBLISHED, "Pending period (fee claim)", window.pending_end
    elif now > window.funding_end:
        if status == ProgramStatus.COMPLETED.value:
            phase, label = Phase.PROGRAM_COMPLETED, "Completed"
        else:
            phase, label = Phase.PROJECT_ONGOING, "Projects in progress"
        boundary = None
    else:
        return ProgramStatusDetail(phase=OverriddenStatus(status), current_phase="Unknown phase", **flags)

    time_until_next = (boundary - now) // _MS if boundary is not None else None
    return ProgramStatusDetail(
        phase=DerivedPhase(phase),
        current_phase=label,
        time_until_next_phase_ms=time_until_next,
        **flags,
    )


def derive_phase(program, now: datetime) -> ProgramPhase:
    return get_program_detailed_status(program, now).phase


def _is_open_funding_program(program) -> bool:
    return program.type == ProgramType.FUNDING.value and _status_of(program) not in OVERRIDE_STATUSES


def can_submit_application(program, now: datetime) -> bool:
    if not _is_open_funding_program(program):
        return False
    return derive_phase(program, now) == DerivedPhase(Phase.APPLICATION_ONGOING)


def can_invest(program, now: datetime) -> bool:
    if not _is_open_funding_program(program):
        return False
    return derive_phase(program, now) == DerivedPhase(Phase.FUNDING_ONGOING)


def can_claim_fee(program, now: datetime) -> bool:
    if program.type != ProgramType.FUNDING.value:
        return False
    return get_program_detailed_status(program, now).is_in_pending_period


def format_time_until_next_phase(milliseconds: int | None) -> str:
    if not milliseconds or milliseconds <= 0:
        return "Started"

    seconds = milliseconds // 1000
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    for value, unit in ((days, "day"), (hours, "hour"), (minutes, "minute")):
        if value > 0:
            return f"{value} {unit}{'s' if value > 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
