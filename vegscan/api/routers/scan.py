"""
Scan endpoint: ingredient-label photo in, vegetarian verdict out.
"""

import logging
from typing import Optional, Union
from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import JSONResponse

from ..models.common import APIError
from ..models.scan import ScanResponse
from ..dependencies.services import get_scan_pipeline
from vegscan.pipeline.scan.scan import ScanPipeline
from vegscan.pipeline.scan.types import ErrorKind, ScanError, ScanInput, USER_MESSAGES

logger = logging.getLogger(__name__)

router = APIRouter()

# client-caused failures are 4xx, ours and upstream's are 5xx
STATUS_CODES = {
    ErrorKind.INVALID_IMAGE: 400,
    ErrorKind.OCR_EMPTY: 400,
    ErrorKind.UPSTREAM_FAILURE: 502,
    ErrorKind.MALFORMED_RESPONSE: 500,
}


def error_response(kind: ErrorKind) -> JSONResponse:
    return JSONResponse(status_code=STATUS_CODES[kind], content=APIError(error=USER_MESSAGES[kind]).model_dump())


async def read_upload(image: Union[UploadFile, str, None], max_bytes: int) -> Optional[ScanInput]:
    """
    Turn the ``image`` form field into a ScanInput.

    A missing field or a plain-text value becomes an empty input, which the
    pipeline rejects as an invalid image. Returns None when the upload is
    larger than ``max_bytes``; at most ``max_bytes + 1`` bytes are read.
    """
    if image is None or isinstance(image, str):
        return ScanInput(image=None, mime_type=None)

    if image.size is not None and image.size > max_bytes:
        return None
    data = await image.read(max_bytes + 1)
    if len(data) > max_bytes:
        return None
    return ScanInput(image=data, mime_type=image.content_type, filename=image.filename)


@router.post(
    "",
    response_model=ScanResponse,
    responses={400: {"model": APIError}, 500: {"model": APIError}, 502: {"model": APIError}},
)
async def scan_label(
    image: Union[UploadFile, str, None] = File(None),
    pipeline: ScanPipeline = Depends(get_scan_pipeline),
):
    """
    Classify the ingredient label in the uploaded image.

    Expects multipart form data with a single ``image`` field. Returns the
    OCR text and the verdict, or ``{"error": ...}`` with a 4xx/5xx status.
    """
    scan_input = await read_upload(image, pipeline.max_image_bytes)
    if scan_input is None:
        logger.warning(f"scan rejected: upload larger than {pipeline.max_image_bytes} bytes")
        return error_response(ErrorKind.INVALID_IMAGE)

    try:
        result = await pipeline.classify_label(scan_input)
    except ScanError as e:
        log = logger.warning if STATUS_CODES[e.kind] < 500 else logger.error
        log(f"scan rejected: kind={e.kind.value} stage={e.stage.value} detail={e.detail}")
        return error_response(e.kind)
    except Exception:
        logger.exception("scan failed with an unexpected error")
        return error_response(ErrorKind.MALFORMED_RESPONSE)

    verdict = result.verdict
    return ScanResponse(
        ocrText=result.ocr_text,
        result=verdict.model_dump(mode="json"),
        label=verdict.label,
        flagged=verdict.flagged,
        promptRef=result.prompt_ref,
    )
