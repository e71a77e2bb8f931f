import asyncio
import logging
import time
from typing import Optional

from vegscan.models.manager import ModelManager
from vegscan.models.providers.base import ModelError
from vegscan.models.services.ocr_base import OcrEngine, OcrError
from vegscan.utils.image_converter import is_image_mime
from .contracts import ClassificationContract, ContractViolation, load_contract
from .parser import MalformedResponse
from .types import ErrorKind, ScanError, ScanInput, ScanResult, ScanStage

logger = logging.getLogger(__name__)

CLASSIFY_TASK = "classify"
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024


class ScanPipeline:
    """
    Image -> OCR -> classification, one independent run per call.

    Stages: received_image -> validated -> ocr_complete ->
    classification_requested -> parsed -> done. Any stage can exit with a
    ScanError whose kind tells the caller how to answer the user. Each
    external call is made once; nothing about a request is kept on self.
    """

    def __init__(self, manager: ModelManager, contract: Optional[ClassificationContract] = None, ocr: Optional[OcrEngine] = None, max_image_bytes: Optional[int] = None):
        self.model_manager = manager
        self.ocr = ocr or manager.ocr
        if contract is None:
            contract = load_contract(manager.prompts, manager.task_config(CLASSIFY_TASK).prompt_ref)
        self.contract = contract
        if max_image_bytes is None:
            scan_cfg = manager.config.get("scan") or {}
            max_image_bytes = int(scan_cfg.get("max_image_bytes", DEFAULT_MAX_IMAGE_BYTES))
        self.max_image_bytes = max_image_bytes

    async def classify_label(self, scan_input: ScanInput) -> ScanResult:
        start = time.perf_counter()
        stage = ScanStage.RECEIVED_IMAGE

        # received_image -> validated
        self._validate(scan_input)
        stage = ScanStage.VALIDATED
        logger.debug(f"scan: {stage.value} ({len(scan_input.image)} bytes, {scan_input.mime_type})")

        # validated -> ocr_complete
        try:
            ocr_text = await self.ocr.extract_text(scan_input.image)
        except OcrError as e:
            logger.error(f"scan failed at {stage.value}: OCR service error", exc_info=True)
            raise ScanError(ErrorKind.UPSTREAM_FAILURE, stage, str(e)) from e
        if not ocr_text or not ocr_text.strip():
            logger.warning(f"scan failed at {stage.value}: OCR found no text")
            raise ScanError(ErrorKind.OCR_EMPTY, stage, "no text detected")
        stage = ScanStage.OCR_COMPLETE
        logger.debug(f"scan: {stage.value} ({len(ocr_text)} chars)")

        if self.contract.is_too_short(ocr_text):
            logger.info(f"scan: OCR text below {self.contract.min_chars} chars, returning guard verdict")
            return ScanResult(
                ocr_text=ocr_text,
                verdict=self.contract.guard_verdict(),
                prompt_ref=self.contract.prompt_ref,
                guarded=True,
                metadata={"processing_time": time.perf_counter() - start},
            )

        # ocr_complete -> classification_requested
        stage = ScanStage.CLASSIFICATION_REQUESTED
        try:
            response = await asyncio.to_thread(
                self.model_manager.call,
                task=CLASSIFY_TASK,
                prompt_ref=self.contract.prompt_ref,
                variables=self.contract.render_variables(ocr_text),
            )
        except ModelError as e:
            logger.error(f"scan failed at {stage.value}: model call error", exc_info=True)
            raise ScanError(ErrorKind.UPSTREAM_FAILURE, stage, str(e)) from e

        # classification_requested -> parsed
        try:
            verdict = self.contract.parse(response.content)
            if self.contract.strict_consistency:
                self.contract.validate(verdict)
        except ContractViolation as e:
            logger.error(f"scan failed at {stage.value}: inconsistent verdict: {e}")
            raise ScanError(ErrorKind.MALFORMED_RESPONSE, stage, str(e)) from e
        except MalformedResponse as e:
            logger.error(f"scan failed at {stage.value}: unparseable reply: {e}")
            raise ScanError(ErrorKind.MALFORMED_RESPONSE, stage, str(e)) from e
        stage = ScanStage.PARSED
        logger.debug(f"scan: {stage.value} (label={verdict.label}, flags={len(verdict.flagged)})")

        # parsed -> done
        elapsed = time.perf_counter() - start
        logger.info(f"scan: {ScanStage.DONE.value} in {elapsed:.2f}s with {self.contract.prompt_ref}")
        return ScanResult(
            ocr_text=ocr_text,
            verdict=verdict,
            prompt_ref=self.contract.prompt_ref,
            metadata={"processing_time": elapsed, "model": response.meta.get("model")},
        )

    def _validate(self, scan_input: ScanInput) -> None:
        stage = ScanStage.RECEIVED_IMAGE
        if not scan_input.image:
            raise ScanError(ErrorKind.INVALID_IMAGE, stage, "image missing or empty")
        if not is_image_mime(scan_input.mime_type):
            raise ScanError(ErrorKind.INVALID_IMAGE, stage, f"unsupported content type {scan_input.mime_type!r}")
        if len(scan_input.image) > self.max_image_bytes:
            raise ScanError(ErrorKind.INVALID_IMAGE, stage, f"image larger than {self.max_image_bytes} bytes")
