# backend/crm_core/services/account_hierarchy.py
"""
Account hierarchy & contacts.

Accounts form a forest under parent_account_id. Supports:
- ancestor chain to the root
- all descendants (recursive)
- annual revenue roll-up across a subtree
- parent reassignment with a cycle guard
- at most one primary contact per account
"""

from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from crm_core.exceptions import NotFoundError, TenantMismatchError
from crm_core.models import Account, Contact
from crm_core.schemas import AccountCreate, ContactCreate
from crm_core.services.base import BaseService, transactional
from crm_core.services.directory import DirectoryService
from crm_core.services.tree import Forest

logger = logging.getLogger(__name__)


def demote_primary_contacts(db: Session, account_id: UUID, keep: Optional[UUID] = None) -> None:
    """Unflag every primary contact of an account except keep."""
    query = db.query(Contact).filter(
        Contact.account_id == account_id,
        Contact.is_primary_contact.is_(True),
    )
    if keep is not None:
        query = query.filter(Contact.contact_id != keep)
    for other in query.all():
        other.is_primary_contact = False
    db.flush()


class AccountHierarchyService(BaseService):

    def __init__(self, db):
        super().__init__(db)
        self.forest = Forest(db, Account, "account_id", "parent_account_id", "Account")
        self.directory = DirectoryService(db)

    def get_account(self, account_id: UUID) -> Account:
        return self.forest.get(account_id)

    @transactional("create_account")
    def create_account(self, data: AccountCreate) -> Account:
        self.directory.require_active_tenant(data.tenant_id)
        if data.parent_account_id is not None:
            self._require_same_tenant(data.parent_account_id, data.tenant_id)
        if data.owner_id is not None:
            owner = self.directory.get_user(data.owner_id)
            if owner.tenant_id != data.tenant_id:
                raise TenantMismatchError(f"Owner {data.owner_id} does not belong to tenant {data.tenant_id}")

        account = Account(**data.model_dump())
        self.db.add(account)
        self.db.flush()
        logger.info(
            f"Created account {account.account_name} ({account.account_id}), "
            f"parent={account.parent_account_id}"
        )
        return account

    @transactional("set_parent")
    def set_parent(self, account_id: UUID, parent_account_id: Optional[UUID]) -> Account:
        """Move an account under a new parent (None makes it a root)."""
        account = self.forest.get(account_id)
        if parent_account_id is not None:
            self._require_same_tenant(parent_account_id, account.tenant_id)
        self.forest.check_parent(account_id, parent_account_id)
        account.parent_account_id = parent_account_id
        logger.info(f"Account {account.account_name} moved under {parent_account_id}")
        return account

    @transactional("delete_account")
    def delete_account(self, account_id: UUID) -> None:
        """
        Delete an account; its contacts go with it.

        Opportunities, child accounts and converted leads still pointing at
        the account (or its contacts) make the database reject the delete.
        """
        account = self.forest.get(account_id)
        self.db.delete(account)
        self.db.flush()
        logger.info(f"Deleted account {account_id}")

    # --- Traversal ---

    def get_ancestors(self, account_id: UUID) -> List[Account]:
        """Parent first, root last."""
        return self.forest.ancestors(account_id)

    def get_parent(self, account_id: UUID) -> Optional[Account]:
        chain = self.forest.ancestors(account_id)
        return chain[0] if chain else None

    def get_root(self, account_id: UUID) -> Account:
        return self.forest.root(account_id)

    def get_descendants(self, account_id: UUID) -> List[Account]:
        return self.forest.descendants(account_id)

    def get_children(self, account_id: UUID) -> List[Account]:
        self.forest.get(account_id)
        return self.forest.children(account_id)

    def get_revenue_rollup(self, account_id: UUID) -> Decimal:
        """annual_revenue of the account plus every descendant; missing revenue counts as 0."""
        account = self.forest.get(account_id)
        subtree = [account] + self.forest.descendants(account_id)
        return sum(
            (Decimal(a.annual_revenue) for a in subtree if a.annual_revenue is not None),
            Decimal("0"),
        )

    # --- Contacts ---

    @transactional("create_contact")
    def create_contact(self, data: ContactCreate) -> Contact:
        if data.account_id is not None:
            self.forest.get(data.account_id)
        contact = Contact(**data.model_dump())
        if contact.is_primary_contact and contact.account_id is not None:
            demote_primary_contacts(self.db, contact.account_id)
        self.db.add(contact)
        self.db.flush()
        logger.info(f"Created contact {contact.contact_id} for account {contact.account_id}")
        return contact

    @transactional("set_primary_contact")
    def set_primary_contact(self, contact_id: UUID) -> Contact:
        contact = self.db.get(Contact, contact_id)
        if contact is None:
            raise NotFoundError("Contact", contact_id)
        if contact.account_id is not None:
            demote_primary_contacts(self.db, contact.account_id, keep=contact_id)
        contact.is_primary_contact = True
        logger.info(f"Contact {contact_id} is now primary for account {contact.account_id}")
        return contact

    def get_contacts(self, account_id: UUID) -> List[Contact]:
        self.forest.get(account_id)
        return (
            self.db.query(Contact)
            .filter(Contact.account_id == account_id)
            .order_by(Contact.is_primary_contact.desc(), Contact.last_name, Contact.first_name)
            .all()
        )

    def get_primary_contact(self, account_id: UUID) -> Optional[Contact]:
        return (
            self.db.query(Contact)
            .filter(Contact.account_id == account_id, Contact.is_primary_contact.is_(True))
            .first()
        )

    def _require_same_tenant(self, parent_account_id: UUID, tenant_id: UUID) -> Account:
        parent = self.forest.get(parent_account_id)
        if parent.tenant_id != tenant_id:
            raise TenantMismatchError(
                f"Parent account {parent_account_id} belongs to tenant {parent.tenant_id}, not {tenant_id}"
            )
        return parent
