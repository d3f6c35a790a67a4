"""AI Usage — persists one ai_usage_log row per LLM or embedding call.

Invariants:
    - Writes in its own session: a usage row never rides on (or rolls back with)
      the caller's transaction
    - A failed write is logged and swallowed; usage tracking never fails the
      operation it measures
"""

import logging
from uuid import UUID

from tutorassist.core.ai_costs import estimate_cost
from tutorassist.infrastructure.database import get_db_manager
from tutorassist.models.ai_usage import AIUsageLog

logger = logging.getLogger(__name__)


async def log_ai_usage(
    operation_type: str,
    model: str,
    tokens_input: int = 0,
    tokens_output: int = 0,
    duration_ms: int = 0,
    success: bool = True,
    workspace_id: UUID | None = None,
    user_id: UUID | None = None,
    job_id: UUID | None = None,
    error_message: str | None = None,
    metadata: dict | None = None,
) -> None:
    row = AIUsageLog(
        workspace_id=workspace_id,
        user_id=user_id,
        operation_type=operation_type,
        model=model,
        tokens_input=tokens_input,
        tokens_output=tokens_output,
        tokens_total=tokens_input + tokens_output,
        cost_usd=estimate_cost(model, tokens_input, tokens_output),
        duration_ms=duration_ms,
        success=success,
        error_message=error_message,
        job_id=job_id,
        metadata_json=metadata or {},
    )
    try:
        async with get_db_manager().session() as db:
            db.add(row)
            await db.commit()
    except Exception as e:
        logger.warning(
            f"Failed to log AI usage for {operation_type}: {e}",
            extra={
                "workspace_id": str(workspace_id) if workspace_id else None,
                "job_id": str(job_id) if job_id else None,
            },
        )
