"""
Common utilities for crm-secure-session.

Modules:
- crm_api: CRM backend REST client (auth and permission endpoints)
- config: environment configuration and component wiring
"""

__all__ = [
    "config",
    "crm_api",
]
