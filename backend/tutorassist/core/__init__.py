"""Core Layer — grading, scheduling, validation and stats with no IO and no DB.

Invariants:
    - No module in core/ imports from services/, api/, infrastructure/, or db/
    - Functions take "now" as an argument wherever time matters, so tests pin it

Design Decisions:
    - Routes and job handlers do the IO and call into core/ for decisions
"""
