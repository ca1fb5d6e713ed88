"""Enumerated values shared by the models, schemas and services."""

from enum import Enum


class LeadStatus(str, Enum):
    NEW = "New"
    QUALIFIED = "Qualified"
    CONVERTED = "Converted"
    LOST = "Lost"


class OpportunityStage(str, Enum):
    """Pipeline stages in funnel order."""
    DISCOVERY = "Discovery"
    PROPOSAL = "Proposal"
    NEGOTIATION = "Negotiation"
    CLOSED_WON = "Closed Won"
    CLOSED_LOST = "Closed Lost"

    @property
    def is_closed(self) -> bool:
        return self.value.startswith("Closed")


class ActivityType(str, Enum):
    CALL = "Call"
    EMAIL = "Email"
    MEETING = "Meeting"
    TASK = "Task"


class ActivityStatus(str, Enum):
    PENDING = "Pending"
    COMPLETED = "Completed"


class RelatedToType(str, Enum):
    """Tables an activity may point at through (related_to_type, related_to_id)."""
    LEAD = "Lead"
    ACCOUNT = "Account"
    OPPORTUNITY = "Opportunity"


def sql_in_list(enum_cls) -> str:
    """Render enum values for a CHECK ... IN (...) clause."""
    return ", ".join(f"'{member.value}'" for member in enum_cls)
