"""Route Modules — one file per resource/concern.

Invariants:
    - Each module defines its own APIRouter with prefix and tags
    - Routes authenticate, check the role, and issue workspace-scoped queries;
      LLM and queue work is delegated to services/

Design Decisions:
    - Explicit registration in main.py over auto-discovery
"""
