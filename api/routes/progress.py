"""
Per-stage migration progress
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_pipeline
from migration.pipeline import MigrationPipeline
from schemas.api import ProgressResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Progress"])


@router.get("/progress", response_model=ProgressResponse)
async def get_progress(pipeline: MigrationPipeline = Depends(get_pipeline)):
    """
    Stage-by-stage progress.

    Each stage reports its status, the units still outstanding and the
    number of entities dispatched so far.
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    progress = pipeline.progress()
    logger.info(f"[{request_id}] GET /progress - active stage {progress.active_stage}")
    return progress
