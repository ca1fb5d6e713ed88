"""
Errors raised by the write path when an invariant the schema cannot express
is violated. Constraint violations the database does enforce (foreign keys,
uniqueness, CHECK constraints) are not wrapped: they surface as
sqlalchemy.exc.IntegrityError.
"""

from typing import Any, Optional


class CRMError(ValueError):
    """Base class for all CRM invariant violations."""


class NotFoundError(CRMError):
    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} {entity_id} not found")


class TenantNotFoundError(NotFoundError):
    def __init__(self, tenant_id: Any):
        super().__init__("Tenant", tenant_id)


class InactiveTenantError(CRMError):
    def __init__(self, tenant_id: Any):
        self.tenant_id = tenant_id
        super().__init__(f"Tenant {tenant_id} is not active")


class TenantMismatchError(CRMError):
    """Two rows that must share a tenant belong to different tenants."""


class HierarchyCycleError(CRMError):
    """A parent/manager assignment would make a node its own ancestor."""

    def __init__(self, entity: str, node_id: Any, parent_id: Optional[Any] = None):
        self.entity = entity
        self.node_id = node_id
        self.parent_id = parent_id
        if parent_id is None:
            message = f"{entity} hierarchy contains a cycle at {node_id}"
        elif parent_id == node_id:
            message = f"{entity} {node_id} cannot be its own parent"
        else:
            message = (
                f"Setting parent of {entity} {node_id} to {parent_id} would create a cycle: "
                f"{parent_id} is already a descendant of {node_id}"
            )
        super().__init__(message)


class InvalidLeadTransitionError(CRMError):
    def __init__(self, lead_id: Any, from_status: str, to_status: str, hint: str = ""):
        self.lead_id = lead_id
        self.from_status = from_status
        self.to_status = to_status
        message = f"Lead {lead_id} cannot move from '{from_status}' to '{to_status}'"
        if hint:
            message = f"{message}: {hint}"
        super().__init__(message)


class LeadStateError(CRMError):
    """status and converted_contact_id disagree."""


class DanglingReferenceError(CRMError):
    """An activity points at a row that does not exist."""

    def __init__(self, related_to_type: str, related_to_id: Any):
        self.related_to_type = related_to_type
        self.related_to_id = related_to_id
        super().__init__(
            f"Activity reference is dangling: no {related_to_type} with id {related_to_id}"
        )
