"""
Workflow progress reporting.

Read-only summary of a project's workflow: step counts per status,
percent complete, and a point-in-time on-track estimate derived from the
in-progress step's planned dates. The estimate ignores remaining work on
steps whose own start/due dates are unset.
"""

from __future__ import annotations

import logging
import math
from dataclasses import asdict, dataclass
from datetime import date, timedelta

from sqlalchemy import select

from tpm.core.exceptions import NotFoundError
from tpm.models import db
from tpm.models.workflow import ProjectWorkflowStep
from tpm.services.project_service import get_project
from tpm.utils.helpers import utc_today

logger = logging.getLogger(__name__)


@dataclass
class ProgressSummary:
    total_steps: int
    completed_steps: int
    in_progress_steps: int
    not_started_steps: int
    blocked_steps: int
    percent_complete: int
    estimated_completion_date: date | None = None
    is_on_track: bool = True

    def to_dict(self) -> dict:
        data = asdict(self)
        data["estimated_completion_date"] = (
            self.estimated_completion_date.isoformat() if self.estimated_completion_date else None
        )
        return data


def _planned_days(start: date | None, due: date | None) -> int:
    """Whole planned days between start and due, floored at zero; 0 if either is missing."""
    if start is None or due is None:
        return 0
    return max(0, (due - start).days)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def get_progress(
    project_id: int,
    *,
    tenant_id: int | None = None,
    today: date | None = None,
) -> ProgressSummary:
    """Summarise workflow progress for a project.

    Args:
        today: Reference date for the on-track check; defaults to today (UTC).

    Raises:
        NotFoundError: Project missing, or its workflow has not been
                       instantiated yet.
    """
    project = get_project(project_id, tenant_id=tenant_id)
    steps = db.session.execute(
        select(ProjectWorkflowStep)
        .where(ProjectWorkflowStep.project_id == project.id)
        .order_by(ProjectWorkflowStep.step_sequence.asc())
    ).scalars().all()

    if not steps:
        raise NotFoundError("Workflow", message="Workflow not found for this project")

    counts = {"completed": 0, "in_progress": 0, "not_started": 0, "blocked": 0}
    for step in steps:
        counts[step.status] = counts.get(step.status, 0) + 1

    total = len(steps)
    summary = ProgressSummary(
        total_steps=total,
        completed_steps=counts["completed"],
        in_progress_steps=counts["in_progress"],
        not_started_steps=counts["not_started"],
        blocked_steps=counts["blocked"],
        percent_complete=_round_half_up(100 * counts["completed"] / total),
    )

    current = next((s for s in steps if s.status == "in_progress"), None)
    if current is None or current.start_date is None or current.due_date is None:
        return summary

    today = today or utc_today()
    planned = _planned_days(current.start_date, current.due_date)
    elapsed = (today - current.start_date).days
    summary.is_on_track = elapsed <= planned

    remaining = sum(
        _planned_days(s.start_date, s.due_date)
        for s in steps
        if s.step_sequence > current.step_sequence
    )
    summary.estimated_completion_date = current.start_date + timedelta(days=planned + remaining)

    logger.debug(
        "Workflow progress project_id=%s current_step=%s planned=%d elapsed=%d remaining=%d",
        project.id, current.step_sequence, planned, elapsed, remaining,
    )
    return summary
