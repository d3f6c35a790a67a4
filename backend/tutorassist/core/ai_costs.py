"""AI Costs — per-model pricing, cost estimation, generation metadata.

Invariants:
    - Prices are USD per million tokens (input, output)
    - Unknown models are priced with DEFAULT_PRICE, never zero
    - estimate_cost is rounded to 6 decimals (ai_usage_log.cost_usd precision)
"""

from datetime import datetime
from typing import Any

from tutorassist.core.clock import utcnow

# (input, output) USD per 1M tokens
MODEL_PRICES: dict[str, tuple[float, float]] = {
    "claude-sonnet-4-5": (3.00, 15.00),
    "claude-haiku-4-5-20251001": (1.00, 5.00),
    "claude-haiku-4-5": (1.00, 5.00),
    "claude-opus-4-1": (15.00, 75.00),
    "text-embedding-3-small": (0.02, 0.0),
    "text-embedding-3-large": (0.13, 0.0),
}
DEFAULT_PRICE: tuple[float, float] = (3.00, 15.00)

PROMPT_VERSIONS: dict[str, str] = {
    "question_generation": "v2.1.0",
    "question_variant": "v1.0.0",
    "flag_review": "v1.0.0",
    "material_analysis": "v1.0.0",
    "embeddings": "v1.0.0",
    "assignment_generation": "v1.0.0",
    "flag_insights": "v1.0.0",
    "topic_analysis": "v1.0.0",
}


class OperationType:
    """ai_usage_log.operation_type values."""
    GENERATE_QUESTIONS = "generate_questions"
    REGEN_VARIANT = "regen_variant"
    FLAG_REVIEW = "flag_review"
    EXTRACT_MATERIAL = "extract_material"
    ANALYZE_MATERIAL = "analyze_material"
    EMBEDDINGS = "embeddings"
    BATCH_GENERATE_SUBMIT = "batch_generate_submit"
    BATCH_GENERATE = "batch_generate"
    ASSIGNMENT_GENERATE = "assignment_generate"
    ASSIGNMENT_REFINE = "assignment_refine"
    FLAG_INSIGHTS = "flag_insights"
    TOPIC_ANALYSIS = "topic_analysis"


def estimate_cost(model: str, tokens_input: int, tokens_output: int) -> float:
    input_price, output_price = MODEL_PRICES.get(model, DEFAULT_PRICE)
    cost = (tokens_input * input_price + tokens_output * output_price) / 1_000_000
    return round(cost, 6)


def create_generation_metadata(
    model: str,
    prompt_version: str,
    temperature: float = 0.8,
    generated_at: datetime | None = None,
    job_id: str | None = None,
    tokens_input: int = 0,
    tokens_output: int = 0,
    generation_time_ms: int = 0,
    validation_passed: bool = True,
    auto_fixes_applied: list[str] | None = None,
    source_context: dict | None = None,
) -> dict[str, Any]:
    """Provenance record stored on each AI-generated question."""
    return {
        "model": model,
        "prompt_version": prompt_version,
        "temperature": temperature,
        "generated_at": (generated_at or utcnow()).isoformat(),
        "job_id": job_id,
        "tokens_used": {
            "input": tokens_input,
            "output": tokens_output,
            "total": tokens_input + tokens_output,
        },
        "generation_time_ms": generation_time_ms,
        "cost_usd": estimate_cost(model, tokens_input, tokens_output),
        "validation_passed": validation_passed,
        "auto_fixes_applied": auto_fixes_applied or [],
        "source_context": source_context or {},
    }
