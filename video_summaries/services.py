"""Construction of the summary pipeline from Django settings."""

from typing import Optional

from django.conf import settings

from summary_pipeline import ServiceFactory, VideoSummaryPipeline

from .credentials import DatabaseCredentialProvider

# Global pipeline instance
_summary_pipeline = None


def build_summary_pipeline(
    media_tool=None, service_factory: Optional[ServiceFactory] = None
) -> VideoSummaryPipeline:
    """Create a pipeline over VNOTES_DATA_DIR that reads its credential from the database."""
    return VideoSummaryPipeline.create(
        settings.VNOTES_DATA_DIR,
        DatabaseCredentialProvider(),
        media_tool=media_tool,
        service_factory=service_factory,
        parallel_summaries=settings.VNOTES_PARALLEL_SUMMARIES,
        temp_directory=settings.VNOTES_TEMP_DIR,
    )


def get_summary_pipeline() -> VideoSummaryPipeline:
    """Get the global summary pipeline instance."""
    global _summary_pipeline
    if _summary_pipeline is None:
        _summary_pipeline = build_summary_pipeline()
    return _summary_pipeline
