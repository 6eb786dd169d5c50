"""
Health check endpoint with migration run status
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_pipeline
from migration.pipeline import MigrationPipeline
from schemas.api import HealthResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(pipeline: MigrationPipeline = Depends(get_pipeline)):
    """
    Health check endpoint.

    Returns:
    - Whether a run is in progress or finished
    - The active stage
    - Errors reported so far (status is derived from these)
    """
    return pipeline.health()
