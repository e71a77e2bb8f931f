#local ocr with surya, for running without a cloud text-detection backend
from typing import Any
import asyncio
import time

from .ocr_base import OcrEngine, OcrError, OcrRequest, OcrResponse
from ...utils.image_converter import load_image


class SuryaOcr(OcrEngine):
    def __init__(self, language_hints=None):
        self.language_hints = language_hints
        self.det_predictor = None
        self.rec_predictor = None

    def _lazy_load(self) -> Any:
        if self.det_predictor is None or self.rec_predictor is None:
            from surya.foundation import FoundationPredictor
            from surya.detection import DetectionPredictor
            from surya.recognition import RecognitionPredictor

            foundation = FoundationPredictor()
            self.det_predictor = DetectionPredictor()
            self.rec_predictor = RecognitionPredictor(foundation)

        return {"det_predictor": self.det_predictor, "rec_predictor": self.rec_predictor}

    def _recognize(self, req: OcrRequest) -> OcrResponse:
        self._lazy_load()
        try:
            image = load_image(req.image)
        except ValueError as e:
            raise OcrError(f"Surya could not decode image: {e}") from e

        t0 = time.perf_counter()
        results = self.rec_predictor([image], det_predictor=self.det_predictor)
        latency = time.perf_counter() - t0

        lines = [line.text for line in results[0].text_lines] if results else []
        return OcrResponse(text="\n".join(lines), raw=results, meta={"latency": latency, "line_count": len(lines)})

    async def ocr(self, req: OcrRequest) -> OcrResponse:
        #inference is cpu/gpu bound, keep it off the event loop
        return await asyncio.to_thread(self._recognize, req)

    async def health_check(self) -> bool:
        try:
            await asyncio.to_thread(self._lazy_load)
            return True
        except ImportError:
            return False
