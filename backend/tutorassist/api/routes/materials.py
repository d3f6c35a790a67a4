"""Material Routes — uploads to object storage and extraction job triggers.

Invariants:
    - Type and size are checked before anything is written (400)
    - An upload records a source_materials row (extraction_status=pending) and,
      unless extract=false, enqueues EXTRACT_MATERIAL for it
    - Delete removes the stored object first, then the row; questions generated
      from the material keep existing with source_material_id cleared
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from tutorassist.api.dependencies import UserContext, require_context, require_tutor
from tutorassist.api.lookups import get_in_workspace_or_404
from tutorassist.core.clock import iso
from tutorassist.core.domain_types import (
    ExtractionStatus, JobType, MaterialType, StorageFolder,
)
from tutorassist.infrastructure.database import get_db
from tutorassist.infrastructure.object_storage import (
    ObjectStorage, get_object_storage, validate_upload,
)
from tutorassist.models.question import Question
from tutorassist.models.source_material import SourceMaterial
from tutorassist.schemas.material import UploadUrlRequest
from tutorassist.services.job_queue import enqueue_job

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/materials", tags=["materials"])


def material_type_for(mime_type: str) -> MaterialType:
    if mime_type == "application/pdf":
        return MaterialType.PDF
    if mime_type.startswith("image/"):
        return MaterialType.IMAGE
    return MaterialType.TEXT


def serialize_material(material: SourceMaterial) -> dict:
    return {
        "id": str(material.id),
        "original_filename": material.original_filename,
        "type": material.type,
        "mime_type": material.mime_type,
        "size_bytes": material.size_bytes,
        "extraction_status": material.extraction_status,
        "metadata": material.metadata_json or {},
        "has_text": bool(material.extracted_text),
        "created_at": iso(material.created_at),
    }


@router.get("")
async def list_materials(
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
):
    rows = (await db.execute(
        select(SourceMaterial)
        .where(SourceMaterial.workspace_id == ctx.workspace_id)
        .order_by(SourceMaterial.created_at.desc())
    )).scalars().all()
    return {"materials": [serialize_material(m) for m in rows]}


@router.post("", status_code=status.HTTP_201_CREATED)
async def upload_material(
    file: UploadFile = File(...),
    extract: bool = Form(True),
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
):
    content_type = file.content_type or "application/octet-stream"
    data = await file.read()
    validate_upload(content_type, len(data))
    filename = file.filename or "upload"

    stored = await storage.upload(
        str(ctx.workspace_id), StorageFolder.MATERIALS, data, filename, content_type,
    )
    material = SourceMaterial(
        workspace_id=ctx.workspace_id,
        uploaded_by=ctx.user_id,
        r2_key=stored["key"],
        original_filename=filename,
        type=material_type_for(content_type).value,
        mime_type=content_type,
        size_bytes=len(data),
        extraction_status=ExtractionStatus.PENDING.value,
        metadata_json={},
    )
    db.add(material)
    await db.commit()
    logger.info(
        f"Material uploaded: {filename} ({len(data)} bytes)",
        extra={"workspace_id": str(ctx.workspace_id), "user_id": str(ctx.user_id)},
    )

    job_id = None
    if extract:
        job = await enqueue_job(
            db, ctx.workspace_id, JobType.EXTRACT_MATERIAL,
            {"materialId": str(material.id)},
            user_id=ctx.user_id,
        )
        job_id = str(job.id)
    return {"material": serialize_material(material), "jobId": job_id}


@router.post("/upload-url")
async def create_upload_url(
    body: UploadUrlRequest,
    ctx: UserContext = Depends(require_tutor),
    storage: ObjectStorage = Depends(get_object_storage),
):
    return await storage.upload_url(
        str(ctx.workspace_id), StorageFolder.MATERIALS, body.filename, body.content_type,
    )


@router.get("/{material_id}/download")
async def download_material(
    material_id: UUID,
    ctx: UserContext = Depends(require_context),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
):
    material = await get_in_workspace_or_404(
        db, SourceMaterial, material_id, ctx.workspace_id, "Material",
    )
    return {"url": await storage.download_url(material.r2_key)}


@router.delete("/{material_id}")
async def delete_material(
    material_id: UUID,
    ctx: UserContext = Depends(require_tutor),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorage = Depends(get_object_storage),
):
    material = await get_in_workspace_or_404(
        db, SourceMaterial, material_id, ctx.workspace_id, "Material",
    )
    await storage.delete(material.r2_key)
    await db.execute(
        update(Question)
        .where(Question.source_material_id == material.id)
        .values(source_material_id=None)
    )
    await db.delete(material)
    await db.commit()
    return {"success": True}
