"""Pydantic Schemas — request validation for API endpoints.

Invariants:
    - Schemas validate at the system boundary (request bodies)
    - Enum-valued fields use Literal or core/domain_types values

Design Decisions:
    - Separate from models: schemas are API contracts, models are persistence
    - Responses are plain dicts built by each route's serializer helpers
"""
