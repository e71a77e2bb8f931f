"""
Health check endpoints for monitoring and diagnostics.
"""

import asyncio
import time
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from ..models.common import HealthStatus
from ..dependencies.services import get_model_manager
from vegscan import __version__
from vegscan.models.manager import ModelManager
from vegscan.models.prompts import parse_prompt_ref
from vegscan.pipeline.scan.scan import CLASSIFY_TASK

router = APIRouter()

# Track server start time for uptime calculation
_server_start_time = time.time()

@router.get("/", response_model=HealthStatus)
async def health_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Basic health check endpoint.

    Reports what was configured at startup without calling any backend.
    """
    task = model_manager.task_config(CLASSIFY_TASK)
    dependencies = {
        "ocr_service": type(model_manager.ocr).__name__,
        "classify_provider": f"{task.provider} ({task.model})",
        "prompt": task.prompt_ref or "unset",
    }
    if task.prompt_ref:
        name, _ = parse_prompt_ref(task.prompt_ref)
        dependencies["prompt_versions"] = ", ".join(model_manager.prompts.versions(name))

    return HealthStatus(
        status="healthy",
        version=__version__,
        uptime=time.time() - _server_start_time,
        dependencies=dependencies
    )

@router.get("/ready")
async def readiness_check(model_manager: ModelManager = Depends(get_model_manager)):
    """
    Readiness probe for container deployments.

    Returns 200 only when both the OCR engine and the classification provider answer.
    """
    ocr_ready = await model_manager.ocr.health_check()
    provider_ready = await asyncio.to_thread(model_manager.health_check, CLASSIFY_TASK)

    if not (ocr_ready and provider_ready):
        return JSONResponse(
            status_code=503,
            content={"ready": False, "ocr": ocr_ready, "classify_provider": provider_ready},
        )
    return {"ready": True, "message": "Service ready to handle requests"}
