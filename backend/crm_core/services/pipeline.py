# backend/crm_core/services/pipeline.py
"""
Lead-to-Opportunity pipeline.

Lead state machine:
    New → Qualified → Converted
                    → Lost
Converted and Lost are terminal. Conversion creates the Contact and stamps
the lead in one transaction, so status = Converted and a non-null
converted_contact_id always appear together.
"""

from datetime import datetime, timezone
from typing import Dict, FrozenSet, List, Optional
from uuid import UUID
import logging

from crm_core.enums import LeadStatus, OpportunityStage
from crm_core.exceptions import (
    InvalidLeadTransitionError,
    LeadStateError,
    NotFoundError,
    TenantMismatchError,
)
from crm_core.models import Account, Contact, Lead, LeadSource, Opportunity, User
from crm_core.schemas import LeadConversionRequest, LeadCreate, OpportunityCreate
from crm_core.services.account_hierarchy import demote_primary_contacts
from crm_core.services.base import BaseService, transactional
from crm_core.services.directory import DirectoryService

logger = logging.getLogger(__name__)


LEAD_TRANSITIONS: Dict[LeadStatus, FrozenSet[LeadStatus]] = {
    LeadStatus.NEW: frozenset({LeadStatus.QUALIFIED}),
    LeadStatus.QUALIFIED: frozenset({LeadStatus.CONVERTED, LeadStatus.LOST}),
    LeadStatus.CONVERTED: frozenset(),
    LeadStatus.LOST: frozenset(),
}


def can_transition(from_status: LeadStatus, to_status: LeadStatus) -> bool:
    return LeadStatus(to_status) in LEAD_TRANSITIONS[LeadStatus(from_status)]


def check_lead_consistency(lead: Lead) -> None:
    """Converted iff converted_contact_id is set."""
    converted = lead.status == LeadStatus.CONVERTED.value
    has_contact = lead.converted_contact_id is not None
    if converted and not has_contact:
        raise LeadStateError(f"Lead {lead.lead_id} is Converted but has no converted contact")
    if has_contact and not converted:
        raise LeadStateError(
            f"Lead {lead.lead_id} has converted contact {lead.converted_contact_id} "
            f"but status is '{lead.status}'"
        )


class PipelineService(BaseService):
    """Leads, their status transitions and conversion; opportunities."""

    def __init__(self, db):
        super().__init__(db)
        self.directory = DirectoryService(db)

    # --- Lead sources ---

    @transactional("create_lead_source")
    def create_lead_source(self, source_name: str) -> LeadSource:
        source = LeadSource(source_name=source_name)
        self.db.add(source)
        self.db.flush()
        logger.info(f"Created lead source {source_name} (id={source.source_id})")
        return source

    def get_lead_source_by_name(self, source_name: str) -> Optional[LeadSource]:
        return self.db.query(LeadSource).filter(LeadSource.source_name == source_name).first()

    # --- Leads ---

    def get_lead(self, lead_id: UUID) -> Lead:
        lead = self.db.get(Lead, lead_id)
        if lead is None:
            raise NotFoundError("Lead", lead_id)
        return lead

    @transactional("create_lead")
    def create_lead(self, data: LeadCreate) -> Lead:
        self.directory.require_active_tenant(data.tenant_id)
        if data.source_id is not None and self.db.get(LeadSource, data.source_id) is None:
            raise NotFoundError("LeadSource", data.source_id)
        if data.assigned_to is not None:
            self._require_tenant_user(data.assigned_to, data.tenant_id)

        lead = Lead(status=LeadStatus.NEW.value, **data.model_dump())
        self.db.add(lead)
        self.db.flush()
        logger.info(f"Created lead {lead.lead_id} ({lead.company}) for tenant {lead.tenant_id}")
        return lead

    @transactional("transition_lead")
    def transition_lead(self, lead_id: UUID, new_status: LeadStatus) -> Lead:
        """Move a lead along the state machine. Conversion has its own operation."""
        new_status = LeadStatus(new_status)
        lead = self.get_lead(lead_id)
        current = LeadStatus(lead.status)

        if new_status == LeadStatus.CONVERTED:
            raise InvalidLeadTransitionError(
                lead_id, current.value, new_status.value, "use convert_lead to convert a lead"
            )
        if not can_transition(current, new_status):
            raise InvalidLeadTransitionError(lead_id, current.value, new_status.value)

        lead.status = new_status.value
        logger.info(f"Lead {lead_id}: {current.value} -> {new_status.value}")
        return lead

    def qualify_lead(self, lead_id: UUID) -> Lead:
        return self.transition_lead(lead_id, LeadStatus.QUALIFIED)

    def mark_lead_lost(self, lead_id: UUID) -> Lead:
        return self.transition_lead(lead_id, LeadStatus.LOST)

    @transactional("convert_lead")
    def convert_lead(
        self,
        lead_id: UUID,
        request: Optional[LeadConversionRequest] = None,
    ) -> Contact:
        """
        Convert a Qualified lead.

        This:
        1. Creates a Contact from the lead's name (optionally under an account)
        2. Sets status = Converted, converted_contact_id and converted_at
        Both writes commit together or not at all.
        """
        request = request or LeadConversionRequest()
        lead = self.get_lead(lead_id)
        current = LeadStatus(lead.status)
        if not can_transition(current, LeadStatus.CONVERTED):
            raise InvalidLeadTransitionError(lead_id, current.value, LeadStatus.CONVERTED.value)

        if request.account_id is not None:
            account = self.db.get(Account, request.account_id)
            if account is None:
                raise NotFoundError("Account", request.account_id)
            if account.tenant_id != lead.tenant_id:
                raise TenantMismatchError(
                    f"Account {account.account_id} is not in lead tenant {lead.tenant_id}"
                )
            if request.is_primary_contact:
                demote_primary_contacts(self.db, request.account_id)

        contact = Contact(
            account_id=request.account_id,
            first_name=lead.first_name,
            last_name=lead.last_name,
            email=request.email,
            phone=request.phone,
            job_title=request.job_title,
            is_primary_contact=request.is_primary_contact,
        )
        self.db.add(contact)
        self.db.flush()

        lead.status = LeadStatus.CONVERTED.value
        lead.converted_contact_id = contact.contact_id
        lead.converted_at = request.converted_at or datetime.now(timezone.utc)
        check_lead_consistency(lead)
        self.db.flush()

        logger.info(f"Converted lead {lead_id} into contact {contact.contact_id}")
        return contact

    def find_inconsistent_leads(self, tenant_id: Optional[UUID] = None) -> List[Lead]:
        """Leads whose status and converted_contact_id disagree."""
        query = self.db.query(Lead)
        if tenant_id is not None:
            query = query.filter(Lead.tenant_id == tenant_id)
        broken = []
        for lead in query.all():
            try:
                check_lead_consistency(lead)
            except LeadStateError:
                broken.append(lead)
        return broken

    # --- Opportunities ---

    def get_opportunity(self, opportunity_id: UUID) -> Opportunity:
        opportunity = self.db.get(Opportunity, opportunity_id)
        if opportunity is None:
            raise NotFoundError("Opportunity", opportunity_id)
        return opportunity

    @transactional("create_opportunity")
    def create_opportunity(self, data: OpportunityCreate) -> Opportunity:
        account = self.db.get(Account, data.account_id)
        if account is None:
            raise NotFoundError("Account", data.account_id)
        if data.contact_id is not None and self.db.get(Contact, data.contact_id) is None:
            raise NotFoundError("Contact", data.contact_id)
        if data.owner_id is not None:
            self._require_tenant_user(data.owner_id, account.tenant_id)

        values = data.model_dump()
        values["stage"] = data.stage.value
        opportunity = Opportunity(**values)
        self.db.add(opportunity)
        self.db.flush()
        logger.info(
            f"Created opportunity {opportunity.opportunity_name} ({opportunity.opportunity_id}) "
            f"stage={opportunity.stage} amount={opportunity.amount}"
        )
        return opportunity

    @transactional("set_stage")
    def set_stage(self, opportunity_id: UUID, stage: OpportunityStage) -> Opportunity:
        stage = OpportunityStage(stage)
        opportunity = self.get_opportunity(opportunity_id)
        previous = opportunity.stage
        opportunity.stage = stage.value
        logger.info(f"Opportunity {opportunity_id}: {previous} -> {stage.value}")
        return opportunity

    @transactional("set_probability")
    def set_probability(self, opportunity_id: UUID, probability: int) -> Opportunity:
        """Probability is independent of stage; the table CHECK keeps it in [0, 100]."""
        opportunity = self.get_opportunity(opportunity_id)
        previous = opportunity.probability
        opportunity.probability = probability
        self.db.flush()
        logger.info(f"Opportunity {opportunity_id}: probability {previous} -> {probability}")
        return opportunity

    def _require_tenant_user(self, user_id: UUID, tenant_id: UUID) -> User:
        user = self.directory.get_user(user_id)
        if user.tenant_id != tenant_id:
            raise TenantMismatchError(f"User {user_id} does not belong to tenant {tenant_id}")
        return user
