"""
Access to the services built once at startup.

The model manager and the scan pipeline are created in the application
lifespan and never mutated afterwards, so every request can share them.
"""

from vegscan.models.manager import ModelManager
from vegscan.pipeline.scan.scan import ScanPipeline


def get_model_manager() -> ModelManager:
    """FastAPI dependency to get the model manager from app state."""
    from ..main import app_state
    return app_state["model_manager"]


def get_scan_pipeline() -> ScanPipeline:
    """FastAPI dependency to get the scan pipeline from app state."""
    from ..main import app_state
    return app_state["scan_pipeline"]
