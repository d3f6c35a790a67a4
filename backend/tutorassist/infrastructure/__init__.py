"""Infrastructure Layer — database, logging and clients for Anthropic, OpenAI, Google and R2.

Invariants:
    - Only core/ errors and clock helpers are imported from the domain side
    - Every third-party failure is mapped to a TutorAssistError subclass

Design Decisions:
    - Thin clients with retry where the provider is flaky (Anthropic); Google
      and R2 calls fail fast and let the caller decide
"""
