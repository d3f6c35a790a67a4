"""API Layer — FastAPI dependencies, error handlers and resource routers.

Invariants:
    - Every workspace-scoped route resolves a UserContext before touching data
    - Errors leave as the {"error": {...}} envelope built by error_handlers.py

Design Decisions:
    - Auth and role checks are FastAPI dependencies, not middleware
"""
