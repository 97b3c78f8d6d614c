"""
API router aggregator: wires all endpoint modules together.
"""

from fastapi import APIRouter

from crm_access.api.endpoints import auth, contacts, portal, rbac, users

api_router = APIRouter()

# Staff auth (login, me, logout)
api_router.include_router(auth.router)

# Roles, permissions, bootstrap
api_router.include_router(rbac.router)

# User management and role assignment
api_router.include_router(users.router)

# Staff-side portal invitations
api_router.include_router(contacts.router)

# Client portal
api_router.include_router(portal.router)
