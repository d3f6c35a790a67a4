"""AI Costs — verifies per-model pricing and the generation provenance record."""

from datetime import datetime, timezone

import pytest

from tutorassist.core.ai_costs import (
    PROMPT_VERSIONS,
    create_generation_metadata,
    estimate_cost,
)


def test_known_model_pricing():
    assert estimate_cost("claude-sonnet-4-5", 1_000_000, 1_000_000) == pytest.approx(18.0)
    assert estimate_cost("claude-haiku-4-5", 1_000_000, 0) == pytest.approx(1.0)


def test_unknown_model_uses_default_price():
    assert estimate_cost("some-future-model", 1000, 0) == pytest.approx(0.003)


def test_embedding_pricing():
    assert estimate_cost("text-embedding-3-small", 1_000_000, 0) == pytest.approx(0.02)


def test_generation_metadata_shape():
    at = datetime(2026, 3, 2, tzinfo=timezone.utc)
    meta = create_generation_metadata(
        model="claude-sonnet-4-5",
        prompt_version=PROMPT_VERSIONS["question_generation"],
        generated_at=at,
        job_id="job-1",
        tokens_input=1000,
        tokens_output=500,
        auto_fixes_applied=["coerced_hints"],
    )
    assert meta["generated_at"] == at.isoformat()
    assert meta["tokens_used"] == {"input": 1000, "output": 500, "total": 1500}
    assert meta["cost_usd"] == pytest.approx(0.0105)
    assert meta["auto_fixes_applied"] == ["coerced_hints"]
    assert meta["source_context"] == {}
    assert meta["validation_passed"] is True
