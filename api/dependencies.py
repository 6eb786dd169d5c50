"""
Shared route dependencies
"""

from fastapi import Request

from migration.pipeline import MigrationPipeline


def get_pipeline(request: Request) -> MigrationPipeline:
    """Pipeline served by this app"""
    return request.app.state.pipeline
