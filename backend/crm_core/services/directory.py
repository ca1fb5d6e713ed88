# backend/crm_core/services/directory.py
"""
Tenancy & identity: tenants, roles, users and the reporting chain.

Every tenant-scoped write goes through require_active_tenant, so rows can
only be attached to a tenant that exists and is active.
"""

from typing import List, Optional
from uuid import UUID
import logging

from crm_core.exceptions import (
    InactiveTenantError,
    NotFoundError,
    TenantMismatchError,
    TenantNotFoundError,
)
from crm_core.models import Role, Tenant, User
from crm_core.rbac import serialize_permissions
from crm_core.schemas import RoleCreate, TenantCreate, UserCreate
from crm_core.services.base import BaseService, transactional
from crm_core.services.tree import Forest

logger = logging.getLogger(__name__)


class DirectoryService(BaseService):
    """Tenants, roles, users and who reports to whom."""

    def __init__(self, db):
        super().__init__(db)
        self.reporting = Forest(db, User, "user_id", "reports_to", "User")

    # --- Tenants ---

    def require_active_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        if not tenant.is_active:
            raise InactiveTenantError(tenant_id)
        return tenant

    @transactional("create_tenant")
    def create_tenant(self, data: TenantCreate) -> Tenant:
        tenant = Tenant(**data.model_dump())
        self.db.add(tenant)
        self.db.flush()
        logger.info(f"Created tenant {tenant.tenant_id} ({tenant.company_name}, {tenant.subscription_plan})")
        return tenant

    @transactional("deactivate_tenant")
    def deactivate_tenant(self, tenant_id: UUID) -> Tenant:
        tenant = self.db.get(Tenant, tenant_id)
        if tenant is None:
            raise TenantNotFoundError(tenant_id)
        tenant.is_active = False
        logger.info(f"Deactivated tenant {tenant_id}")
        return tenant

    # --- Roles ---

    @transactional("create_role")
    def create_role(self, data: RoleCreate) -> Role:
        role = Role(
            role_name=data.role_name,
            permissions=serialize_permissions(data.permissions),
        )
        self.db.add(role)
        self.db.flush()
        logger.info(f"Created role {role.role_name} (id={role.role_id})")
        return role

    def get_role_by_name(self, role_name: str) -> Optional[Role]:
        return self.db.query(Role).filter(Role.role_name == role_name).first()

    # --- Users ---

    def get_user(self, user_id: UUID) -> User:
        return self.reporting.get(user_id)

    @transactional("create_user")
    def create_user(self, data: UserCreate) -> User:
        self.require_active_tenant(data.tenant_id)
        if data.role_id is not None and self.db.get(Role, data.role_id) is None:
            raise NotFoundError("Role", data.role_id)
        if data.reports_to is not None:
            self._require_same_tenant(data.reports_to, data.tenant_id)

        user = User(**data.model_dump())
        self.db.add(user)
        self.db.flush()
        logger.info(f"Created user {user.email} (tenant: {user.tenant_id})")
        return user

    @transactional("set_manager")
    def set_manager(self, user_id: UUID, manager_id: Optional[UUID]) -> User:
        """Reassign reports_to; refuses anything that would close a loop."""
        user = self.reporting.get(user_id)
        if manager_id is not None:
            self._require_same_tenant(manager_id, user.tenant_id)
        self.reporting.check_parent(user_id, manager_id)
        user.reports_to = manager_id
        logger.info(f"User {user.email} now reports to {manager_id}")
        return user

    @transactional("deactivate_user")
    def deactivate_user(self, user_id: UUID) -> User:
        user = self.reporting.get(user_id)
        user.is_active = False
        logger.info(f"Deactivated user {user.email}")
        return user

    def get_reporting_chain(self, user_id: UUID) -> List[User]:
        """Direct manager first, top of the tree last."""
        return self.reporting.ancestors(user_id)

    def get_direct_reports(self, user_id: UUID) -> List[User]:
        self.reporting.get(user_id)
        return self.reporting.children(user_id)

    def get_all_reports(self, user_id: UUID) -> List[User]:
        """Direct and transitive reports, nearest level first."""
        return self.reporting.descendants(user_id)

    def _require_same_tenant(self, manager_id: UUID, tenant_id: UUID) -> User:
        manager = self.reporting.get(manager_id)
        if manager.tenant_id != tenant_id:
            raise TenantMismatchError(
                f"Manager {manager_id} belongs to tenant {manager.tenant_id}, not {tenant_id}"
            )
        return manager
