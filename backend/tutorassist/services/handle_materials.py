"""Material Handlers — EXTRACT_MATERIAL job: text extraction plus curriculum analysis.

Invariants:
    - extraction_status: pending -> processing -> completed | failed
    - extracted_text is capped at MAX_EXTRACTED_CHARS
    - On any failure the material is marked failed (committed) and the error re-raised
      so the queue applies its retry policy

Design Decisions:
    - text/* decoded as UTF-8, PDFs parsed with pypdf, images transcribed by the
      LLM vision input (base64 block)
    - Status transitions are committed here, unlike the other handlers: the
      material row must show "failed" even though the job transaction rolls back
"""

import io
import base64
import logging
from uuid import UUID

from pypdf import PdfReader
from pypdf.errors import PdfReadError
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.config import get_settings
from tutorassist.core.ai_costs import OperationType, PROMPT_VERSIONS
from tutorassist.core.domain_types import ExtractionStatus, MaterialType
from tutorassist.core.errors import JobExecutionError
from tutorassist.core.llm_json import extract_json
from tutorassist.infrastructure.object_storage import get_object_storage
from tutorassist.models.job import Job
from tutorassist.models.source_material import SourceMaterial
from tutorassist.services import llm_gateway
from tutorassist.services.question_prompts import (
    IMAGE_TRANSCRIPTION_PROMPT, MATERIAL_ANALYSIS_SYSTEM_PROMPT,
)

logger = logging.getLogger(__name__)

MAX_EXTRACTED_CHARS = 100_000
ANALYSIS_INPUT_CHARS = 30_000


def extract_pdf_text(data: bytes) -> str:
    try:
        reader = PdfReader(io.BytesIO(data))
        pages = [page.extract_text() or "" for page in reader.pages]
    except PdfReadError as e:
        raise JobExecutionError(f"Unreadable PDF: {e}", retry=False)
    return "\n\n".join(p.strip() for p in pages if p.strip())


class MaterialHandlers:
    """Turns uploaded files into text the generator can use as context."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def extract_material(self, job: Job) -> dict:
        material_id = (job.payload_json or {}).get("materialId")
        material = (
            await self.db.get(SourceMaterial, UUID(str(material_id))) if material_id else None
        )
        if not material or material.workspace_id != job.workspace_id:
            raise JobExecutionError("Material not found", retry=False)

        material.extraction_status = ExtractionStatus.PROCESSING.value
        await self.db.commit()
        previous_metadata = dict(material.metadata_json or {})
        material_pk, filename = material.id, material.original_filename
        log_extra = {"job_id": str(job.id), "workspace_id": str(job.workspace_id)}

        try:
            text = await self._extract_text(job, material)
            analysis = await self._analyze(job, text) if text.strip() else {}
        except Exception as e:
            await self.db.rollback()
            await self.db.execute(
                update(SourceMaterial)
                .where(SourceMaterial.id == material_pk)
                .values(
                    extraction_status=ExtractionStatus.FAILED.value,
                    metadata_json={**previous_metadata, "error": str(e)},
                )
            )
            await self.db.commit()
            logger.warning(
                f"Material extraction failed for {filename}: {e}", extra=log_extra,
            )
            raise

        material.extracted_text = text[:MAX_EXTRACTED_CHARS]
        material.extraction_status = ExtractionStatus.COMPLETED.value
        material.metadata_json = {
            **previous_metadata,
            "analysis": analysis,
            "analysisPromptVersion": PROMPT_VERSIONS["material_analysis"],
        }
        return {
            "materialId": str(material.id),
            "textLength": len(material.extracted_text),
            "topics": analysis.get("topics", []),
        }

    async def _extract_text(self, job: Job, material: SourceMaterial) -> str:
        data = await get_object_storage().read(material.r2_key)
        if material.type == MaterialType.TEXT.value:
            return data.decode("utf-8", errors="replace")
        if material.type == MaterialType.PDF.value:
            return extract_pdf_text(data)
        if material.type == MaterialType.IMAGE.value:
            completion = await llm_gateway.tracked_completion(
                OperationType.EXTRACT_MATERIAL,
                "You transcribe math worksheets and textbook pages.",
                [
                    {
                        "type": "image",
                        "source": {
                            "type": "base64",
                            "media_type": material.mime_type,
                            "data": base64.b64encode(data).decode("ascii"),
                        },
                    },
                    {"type": "text", "text": IMAGE_TRANSCRIPTION_PROMPT},
                ],
                max_tokens=4096,
                workspace_id=job.workspace_id,
                user_id=job.created_by_user_id,
                job_id=job.id,
                metadata={"materialId": str(material.id)},
            )
            return completion.text
        raise JobExecutionError(f"Unsupported material type: {material.type}", retry=False)

    async def _analyze(self, job: Job, text: str) -> dict:
        completion = await llm_gateway.tracked_completion(
            OperationType.ANALYZE_MATERIAL,
            MATERIAL_ANALYSIS_SYSTEM_PROMPT,
            text[:ANALYSIS_INPUT_CHARS],
            model=get_settings().llm_fast_model,
            max_tokens=2048,
            workspace_id=job.workspace_id,
            user_id=job.created_by_user_id,
            job_id=job.id,
        )
        parsed = extract_json(completion.text)
        if not isinstance(parsed, dict):
            logger.info("Material analysis returned no JSON object", extra={"job_id": str(job.id)})
            return {}
        return {
            "topics": parsed.get("topics") or [],
            "concepts": parsed.get("concepts") or [],
            "keyTerms": parsed.get("keyTerms") or [],
            "equations": parsed.get("equations") or [],
            "summary": parsed.get("summary") or "",
        }
