# tests/services/test_pipeline.py
"""
Tests for PipelineService

Coverage:
- Lead state machine (legal and illegal moves)
- Conversion creates a contact and stamps the lead atomically
- Converted/converted_contact_id consistency (service and table check)
- Opportunity creation, stage changes and probability bounds

Run with: pytest tests/services/test_pipeline.py -v
"""

import logging

import pytest
from datetime import date
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError

from crm_core.enums import LeadStatus, OpportunityStage
from crm_core.exceptions import (
    InvalidLeadTransitionError,
    LeadStateError,
    NotFoundError,
    TenantMismatchError,
)
from crm_core.models import Contact, Lead
from crm_core.schemas import LeadConversionRequest, LeadCreate, OpportunityCreate
from crm_core.services.pipeline import (
    LEAD_TRANSITIONS,
    PipelineService,
    can_transition,
    check_lead_consistency,
)


@pytest.fixture
def pipeline(db_session):
    return PipelineService(db_session)


@pytest.fixture
def webinar(pipeline):
    return pipeline.create_lead_source("Webinar")


@pytest.fixture
def lead(pipeline, tenant, rep, webinar):
    return pipeline.create_lead(
        LeadCreate(
            tenant_id=tenant.tenant_id,
            source_id=webinar.source_id,
            first_name="Michael",
            last_name="Scott",
            company="Dunder Mifflin",
            lead_score=95,
            assigned_to=rep.user_id,
        )
    )


# ============================================================================
# TEST: State machine
# ============================================================================

@pytest.mark.unit
class TestTransitionTable:

    def test_terminal_states(self):
        assert LEAD_TRANSITIONS[LeadStatus.CONVERTED] == frozenset()
        assert LEAD_TRANSITIONS[LeadStatus.LOST] == frozenset()

    @pytest.mark.parametrize(
        "from_status,to_status,allowed",
        [
            (LeadStatus.NEW, LeadStatus.QUALIFIED, True),
            (LeadStatus.QUALIFIED, LeadStatus.CONVERTED, True),
            (LeadStatus.QUALIFIED, LeadStatus.LOST, True),
            (LeadStatus.NEW, LeadStatus.CONVERTED, False),
            (LeadStatus.NEW, LeadStatus.LOST, False),
            (LeadStatus.LOST, LeadStatus.QUALIFIED, False),
            (LeadStatus.CONVERTED, LeadStatus.NEW, False),
        ],
    )
    def test_can_transition(self, from_status, to_status, allowed):
        assert can_transition(from_status, to_status) is allowed

    def test_consistency_check(self):
        with pytest.raises(LeadStateError):
            check_lead_consistency(Lead(lead_id=uuid4(), status="Converted"))
        with pytest.raises(LeadStateError):
            check_lead_consistency(Lead(lead_id=uuid4(), status="Qualified", converted_contact_id=uuid4()))
        check_lead_consistency(Lead(lead_id=uuid4(), status="Converted", converted_contact_id=uuid4()))


@pytest.mark.integration
class TestLeadLifecycle:

    def test_new_lead_starts_new(self, lead):
        assert lead.status == LeadStatus.NEW.value
        assert lead.converted_contact_id is None
        assert lead.source.source_name == "Webinar"

    def test_qualify_then_lose(self, pipeline, lead):
        pipeline.qualify_lead(lead.lead_id)
        pipeline.mark_lead_lost(lead.lead_id)

        assert pipeline.get_lead(lead.lead_id).status == "Lost"

        with pytest.raises(InvalidLeadTransitionError):
            pipeline.qualify_lead(lead.lead_id)

    def test_new_cannot_be_lost(self, pipeline, lead):
        with pytest.raises(InvalidLeadTransitionError):
            pipeline.mark_lead_lost(lead.lead_id)

    def test_converted_only_through_convert_lead(self, pipeline, lead):
        pipeline.qualify_lead(lead.lead_id)

        with pytest.raises(InvalidLeadTransitionError, match="convert_lead"):
            pipeline.transition_lead(lead.lead_id, LeadStatus.CONVERTED)

    def test_assignee_from_other_tenant_rejected(self, pipeline, other_tenant, rep):
        with pytest.raises(TenantMismatchError):
            pipeline.create_lead(
                LeadCreate(tenant_id=other_tenant.tenant_id, company="Initech", assigned_to=rep.user_id)
            )

    def test_unknown_source_rejected(self, pipeline, tenant):
        with pytest.raises(NotFoundError):
            pipeline.create_lead(LeadCreate(tenant_id=tenant.tenant_id, source_id=42))


# ============================================================================
# TEST: Conversion
# ============================================================================

@pytest.mark.integration
class TestConversion:

    def test_convert_creates_contact(self, pipeline, lead, east):
        pipeline.qualify_lead(lead.lead_id)

        contact = pipeline.convert_lead(
            lead.lead_id,
            LeadConversionRequest(account_id=east.account_id, email="m.scott@dundermifflin.com"),
        )

        converted = pipeline.get_lead(lead.lead_id)
        assert converted.status == "Converted"
        assert converted.converted_contact_id == contact.contact_id
        assert converted.converted_at is not None
        assert contact.first_name == "Michael"
        assert contact.last_name == "Scott"
        assert contact.account_id == east.account_id
        assert pipeline.find_inconsistent_leads() == []

    def test_convert_as_primary_demotes_existing_primary(self, pipeline, hierarchy, lead, east):
        from crm_core.schemas import ContactCreate

        alice = hierarchy.create_contact(
            ContactCreate(account_id=east.account_id, first_name="Alice", is_primary_contact=True)
        )
        pipeline.qualify_lead(lead.lead_id)

        contact = pipeline.convert_lead(
            lead.lead_id,
            LeadConversionRequest(account_id=east.account_id, is_primary_contact=True),
        )

        primaries = [c for c in hierarchy.get_contacts(east.account_id) if c.is_primary_contact]
        assert [c.contact_id for c in primaries] == [contact.contact_id]
        assert hierarchy.get_primary_contact(east.account_id).contact_id != alice.contact_id

    def test_convert_as_secondary_keeps_existing_primary(self, pipeline, hierarchy, lead, east):
        from crm_core.schemas import ContactCreate

        alice = hierarchy.create_contact(
            ContactCreate(account_id=east.account_id, first_name="Alice", is_primary_contact=True)
        )
        pipeline.qualify_lead(lead.lead_id)

        pipeline.convert_lead(lead.lead_id, LeadConversionRequest(account_id=east.account_id))

        assert hierarchy.get_primary_contact(east.account_id).contact_id == alice.contact_id

    def test_new_lead_cannot_convert(self, pipeline, lead, db_session):
        with pytest.raises(InvalidLeadTransitionError):
            pipeline.convert_lead(lead.lead_id)

        assert db_session.query(Contact).count() == 0

    def test_converted_is_terminal(self, pipeline, lead):
        pipeline.qualify_lead(lead.lead_id)
        pipeline.convert_lead(lead.lead_id)

        with pytest.raises(InvalidLeadTransitionError):
            pipeline.convert_lead(lead.lead_id)
        with pytest.raises(InvalidLeadTransitionError):
            pipeline.mark_lead_lost(lead.lead_id)

    def test_failed_conversion_leaves_nothing_behind(self, pipeline, lead, db_session):
        pipeline.qualify_lead(lead.lead_id)

        with patch(
            "crm_core.services.pipeline.check_lead_consistency",
            side_effect=LeadStateError("boom"),
        ):
            with pytest.raises(LeadStateError):
                pipeline.convert_lead(lead.lead_id)

        db_session.expire_all()
        reloaded = db_session.get(Lead, lead.lead_id)
        assert reloaded.status == "Qualified"
        assert reloaded.converted_contact_id is None
        assert db_session.query(Contact).count() == 0

    def test_conversion_account_in_other_tenant(self, pipeline, hierarchy, other_tenant, lead, db_session):
        from crm_core.schemas import AccountCreate

        foreign = hierarchy.create_account(
            AccountCreate(tenant_id=other_tenant.tenant_id, account_name="Initech")
        )
        pipeline.qualify_lead(lead.lead_id)

        with pytest.raises(TenantMismatchError):
            pipeline.convert_lead(lead.lead_id, LeadConversionRequest(account_id=foreign.account_id))
        assert db_session.query(Contact).count() == 0

    def test_table_rejects_converted_without_contact(self, db_session, tenant):
        db_session.add(Lead(tenant_id=tenant.tenant_id, status="Converted"))

        with pytest.raises(IntegrityError):
            db_session.flush()
        db_session.rollback()

    def test_find_inconsistent_leads(self, pipeline, lead, db_session, east):
        # Never flushed: the table check would reject it
        stray = Contact(account_id=east.account_id, first_name="Stray")
        db_session.add(stray)
        db_session.flush()
        lead.converted_contact_id = stray.contact_id

        assert [l.lead_id for l in pipeline.find_inconsistent_leads()] == [lead.lead_id]
        db_session.rollback()


@pytest.mark.unit
class TestConversionRollback:

    def test_flush_failure_rolls_back(self, mock_db):
        qualified = Lead(lead_id=uuid4(), tenant_id=uuid4(), status="Qualified", first_name="A")
        mock_db.get.return_value = qualified
        mock_db.flush.side_effect = RuntimeError("connection lost")

        with pytest.raises(RuntimeError):
            PipelineService(mock_db).convert_lead(qualified.lead_id)

        mock_db.rollback.assert_called_once()
        mock_db.commit.assert_not_called()


# ============================================================================
# TEST: Opportunities
# ============================================================================

@pytest.mark.integration
class TestOpportunities:

    def _create(self, pipeline, account, owner, **overrides):
        values = dict(
            account_id=account.account_id,
            owner_id=owner.user_id,
            opportunity_name="Q1 Acme Expansion",
            stage=OpportunityStage.PROPOSAL,
            amount=Decimal("150000.00"),
            probability=60,
            expected_close_date=date(2024, 6, 30),
        )
        values.update(overrides)
        return pipeline.create_opportunity(OpportunityCreate(**values))

    def test_create_and_move_stage(self, pipeline, east, rep):
        opportunity = self._create(pipeline, east, rep)
        assert opportunity.stage == "Proposal"
        assert opportunity.account.account_name == "Acme East Division"

        pipeline.set_stage(opportunity.opportunity_id, OpportunityStage.CLOSED_WON)

        assert pipeline.get_opportunity(opportunity.opportunity_id).stage == "Closed Won"
        # Probability is not derived from stage
        assert pipeline.get_opportunity(opportunity.opportunity_id).probability == 60

    def test_default_stage_is_discovery(self, pipeline, east):
        opportunity = pipeline.create_opportunity(
            OpportunityCreate(account_id=east.account_id, opportunity_name="New deal")
        )
        assert opportunity.stage == "Discovery"

    def test_probability_bounds_in_schema(self):
        with pytest.raises(ValidationError):
            OpportunityCreate(account_id=uuid4(), opportunity_name="x", probability=101)
        with pytest.raises(ValidationError):
            OpportunityCreate(account_id=uuid4(), opportunity_name="x", probability=-1)

    def test_probability_bounds_in_table(self, pipeline, east, rep):
        opportunity = self._create(pipeline, east, rep)

        with pytest.raises(IntegrityError):
            pipeline.set_probability(opportunity.opportunity_id, 150)

        assert pipeline.get_opportunity(opportunity.opportunity_id).probability == 60

    def test_set_probability_logged(self, pipeline, east, rep, caplog):
        opportunity = self._create(pipeline, east, rep)

        with caplog.at_level(logging.INFO, logger="crm_core.services.pipeline"):
            pipeline.set_probability(opportunity.opportunity_id, 80)

        assert pipeline.get_opportunity(opportunity.opportunity_id).probability == 80
        assert "probability 60 -> 80" in caplog.text

    def test_unknown_stage_rejected(self, pipeline, east, rep):
        opportunity = self._create(pipeline, east, rep)

        with pytest.raises(ValueError):
            pipeline.set_stage(opportunity.opportunity_id, "Won-ish")

    def test_unknown_account(self, pipeline):
        with pytest.raises(NotFoundError):
            pipeline.create_opportunity(OpportunityCreate(account_id=uuid4(), opportunity_name="x"))

    def test_owner_from_other_tenant_rejected(self, pipeline, directory, other_tenant, east):
        from crm_core.schemas import UserCreate

        outsider = directory.create_user(
            UserCreate(tenant_id=other_tenant.tenant_id, email="outsider@initech.com")
        )
        with pytest.raises(TenantMismatchError):
            self._create(pipeline, east, outsider)
