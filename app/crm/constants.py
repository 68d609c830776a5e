"""
Central constants for the CRM application.
"""
from __future__ import annotations

# Sales pipeline, in reporting order
OPPORTUNITY_STAGES = (
    "prospecting",
    "qualification",
    "proposal",
    "negotiation",
    "closed-won",
    "closed-lost",
)
CLOSED_STAGES = ("closed-won", "closed-lost")
DEFAULT_STAGE = "prospecting"
DEFAULT_OPPORTUNITY_STATUS = "active"

STAGE_LABELS = {
    "prospecting": "Prospecting",
    "qualification": "Qualification",
    "proposal": "Proposal",
    "negotiation": "Negotiation",
    "closed-won": "Closed Won",
    "closed-lost": "Closed Lost",
}

ACTIVITY_TYPES = ("call", "meeting", "email", "task")
ACTIVITY_STATUSES = ("pending", "in-progress", "completed")
ACTIVITY_PRIORITIES = ("low", "medium", "high")
DEFAULT_ACTIVITY_STATUS = "pending"
DEFAULT_ACTIVITY_PRIORITY = "medium"

USER_ROLES = ("admin", "staff")
DEFAULT_USER_ROLE = "staff"

# The account that can never be deleted
PROTECTED_USERNAME = "admin"

# Landing route after a successful login
HOME_ROUTE = "/dashboard"


def stage_rank(stage: str | None) -> int:
    """Position of a stage in the pipeline; unknown stages sort last."""
    try:
        return OPPORTUNITY_STAGES.index(stage)  # type: ignore[arg-type]
    except ValueError:
        return len(OPPORTUNITY_STAGES)
