"""Services Layer — job queue, job handlers, and LLM-backed operations.

Invariants:
    - Job handlers split by concern; JobDispatch maps job types explicitly
    - Every outbound LLM call goes through llm_gateway so usage is logged

Design Decisions:
    - One handler file per concern for locality (ADR: no god objects)
"""
