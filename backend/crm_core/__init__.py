"""Multi-tenant CRM schema, guarded write path and reporting views."""

__version__ = "1.0.0"
