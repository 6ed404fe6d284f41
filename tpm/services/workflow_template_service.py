"""
Workflow template catalog.

Read-only at runtime: templates are seeded once per deliverable type
(``flask seed-workflow-templates``) and then only listed.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from tpm.core.exceptions import NotFoundError
from tpm.models import db
from tpm.models.workflow import WorkflowTemplate

logger = logging.getLogger(__name__)


def list_templates(deliverable_type: str) -> list[WorkflowTemplate]:
    """Return the template steps for a deliverable type, ascending by sequence.

    Raises:
        NotFoundError: If no templates exist for the deliverable type.
    """
    templates = db.session.execute(
        select(WorkflowTemplate)
        .where(WorkflowTemplate.deliverable_type == deliverable_type)
        .order_by(WorkflowTemplate.step_sequence.asc())
    ).scalars().all()
    if not templates:
        raise NotFoundError(
            "WorkflowTemplate",
            message=f"No workflow templates found for deliverable type: {deliverable_type}",
        )
    return list(templates)


def has_templates(deliverable_type: str) -> bool:
    return db.session.execute(
        select(WorkflowTemplate.id)
        .where(WorkflowTemplate.deliverable_type == deliverable_type)
        .limit(1)
    ).first() is not None


def list_deliverable_types() -> list[str]:
    """Deliverable types that have a seeded catalog."""
    rows = db.session.execute(
        select(WorkflowTemplate.deliverable_type)
        .distinct()
        .order_by(WorkflowTemplate.deliverable_type.asc())
    ).scalars().all()
    return list(rows)


def seed_default_templates() -> int:
    """
    Insert the default workflow catalog.
    Safe to run multiple times — skips existing (deliverable_type, step_sequence) pairs.

    Call this from the Flask CLI command or from test fixtures.
    Returns the number of rows created; the caller commits.
    """
    created = 0
    for deliverable_type, steps in _get_default_templates().items():
        existing = set(
            db.session.execute(
                select(WorkflowTemplate.step_sequence)
                .where(WorkflowTemplate.deliverable_type == deliverable_type)
            ).scalars().all()
        )
        for sequence, step in enumerate(steps, start=1):
            if sequence in existing:
                continue
            db.session.add(WorkflowTemplate(
                deliverable_type=deliverable_type,
                step_sequence=sequence,
                step_name=step["name"],
                step_description=step.get("description"),
                estimated_duration_hours=step.get("hours"),
                required_inputs=step.get("inputs", []),
                outputs=step.get("outputs", []),
            ))
            created += 1

    if created > 0:
        db.session.flush()
        logger.info("Seeded %d workflow template steps", created)

    return created


def _get_default_templates() -> dict[str, list[dict]]:
    """Standard step lists per deliverable type."""
    return {
        "LOCAL_FILE": [
            {
                "name": "Project Intake",
                "description": "Gather client info, entity details, fiscal year",
                "hours": 4,
                "inputs": ["client_info", "entity_details", "fiscal_year"],
            },
            {
                "name": "Data Gathering",
                "description": "Collect financial statements, contracts, questionnaires",
                "hours": 16,
                "inputs": ["financial_statements", "contracts", "questionnaire"],
            },
            {
                "name": "Functional Analysis",
                "description": "Perform FAR analysis",
                "hours": 24,
                "outputs": ["FAR_analysis_report"],
            },
            {
                "name": "Comparability Analysis",
                "description": "Conduct benchmark study",
                "hours": 32,
                "outputs": ["benchmark_study", "arms_length_range"],
            },
            {
                "name": "Drafting",
                "description": "Draft Local File document",
                "hours": 40,
                "outputs": ["local_file_draft"],
            },
            {
                "name": "Internal Review",
                "description": "Internal quality review",
                "hours": 8,
                "outputs": ["reviewed_draft"],
            },
            {
                "name": "Client Review",
                "description": "Send to client for feedback",
                "hours": 4,
                "inputs": ["client_feedback"],
            },
            {
                "name": "Finalization",
                "description": "Finalize and sign document",
                "hours": 8,
                "outputs": ["signed_local_file"],
            },
            {
                "name": "Post-Delivery",
                "description": "Archive documentation",
                "hours": 2,
                "outputs": ["archived_docs"],
            },
        ],
        "MASTER_FILE": [
            {"name": "Data Collection", "description": "Gather all required financial and operational data", "hours": 40},
            {"name": "Functional Analysis", "description": "Analyze functions, risks, and assets", "hours": 56},
            {"name": "Comparability Analysis", "description": "Search and select comparable companies", "hours": 80},
            {"name": "Economic Analysis", "description": "Perform transfer pricing calculations", "hours": 56},
            {"name": "Benchmarking", "description": "Run statistical tests and validate results", "hours": 40},
            {"name": "Draft Preparation", "description": "Write Master File document", "hours": 80},
            {"name": "Quality Review", "description": "Partner and technical review", "hours": 40},
            {"name": "Finalization", "description": "Address comments and finalize document", "hours": 24},
        ],
        "BENCHMARK_ANALYSIS": [
            {"name": "Project Scoping", "hours": 4},
            {"name": "Search Strategy", "hours": 8},
            {"name": "Database Search", "hours": 16},
            {"name": "Qualitative Analysis", "hours": 24},
            {"name": "Financial Analysis", "hours": 20},
            {"name": "Comparability Adjustments", "hours": 12},
            {"name": "Benchmarking Report", "hours": 16},
            {"name": "Quality Assurance", "hours": 8},
            {"name": "Delivery", "hours": 4},
        ],
    }
