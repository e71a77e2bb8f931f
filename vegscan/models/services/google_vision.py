#text detection through the Cloud Vision REST API (images:annotate)
from typing import Any, Dict, List, Optional
import logging
import time
import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential_jitter, retry_if_exception_type

from .ocr_base import OcrEngine, OcrError, OcrRequest, OcrResponse
from ..providers.base import resolve_api_key
from ...utils.image_converter import to_base64

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


class _RetryableOcrError(OcrError): ...


class GoogleVisionOcr(OcrEngine):
    def __init__(self, api_key: Optional[str] = None, api_key_env: Optional[str] = "GCV_API_KEY", base_url: str = "https://vision.googleapis.com", timeout: float = 30.0, language_hints: Optional[List[str]] = None, max_attempts: int = 1, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.api_key = resolve_api_key(api_key, api_key_env, "google vision ocr")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.language_hints = language_hints
        self.max_attempts = max_attempts
        self.client = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    def _build_payload(self, req: OcrRequest) -> Dict[str, Any]:
        request: Dict[str, Any] = {
            "image": {"content": to_base64(req.image)},
            "features": [{"type": "TEXT_DETECTION"}],
        }
        if req.language_hints:
            request["imageContext"] = {"languageHints": list(req.language_hints)}
        return {"requests": [request]}

    async def ocr(self, req: OcrRequest) -> OcrResponse:
        retrying = AsyncRetrying(
            reraise=True,
            wait=wait_exponential_jitter(initial=0.5, max=4),
            stop=stop_after_attempt(max(1, self.max_attempts)),
            retry=retry_if_exception_type(_RetryableOcrError),
        )
        async for attempt in retrying:
            with attempt:
                return await self._annotate(req)

    async def _annotate(self, req: OcrRequest) -> OcrResponse:
        t0 = time.perf_counter()
        try:
            response = await self.client.post("/v1/images:annotate", params={"key": self.api_key}, json=self._build_payload(req))
            response.raise_for_status()
            data = response.json()
        except httpx.TimeoutException as e:
            raise _RetryableOcrError(f"Vision API timeout after {self.timeout}s") from e
        except httpx.HTTPStatusError as e:
            msg = f"Vision API error: HTTP {e.response.status_code}"
            if e.response.status_code in RETRYABLE_STATUS:
                raise _RetryableOcrError(msg) from e
            raise OcrError(msg) from e
        except httpx.TransportError as e:
            raise _RetryableOcrError(f"Vision API connection failed: {type(e).__name__}") from e
        except ValueError as e:
            raise OcrError(f"Vision API returned a non-JSON body: {e}") from e
        latency = time.perf_counter() - t0

        responses = data.get("responses") if isinstance(data, dict) else None
        if not responses:
            raise OcrError("Vision API returned no responses")
        result = responses[0] or {}
        if "error" in result:
            error = result["error"] or {}
            raise OcrError(f"Vision API image error {error.get('code')}: {error.get('message')}")

        annotations = result.get("textAnnotations") or []
        if annotations:
            text = annotations[0].get("description", "")
        else:
            text = (result.get("fullTextAnnotation") or {}).get("text", "")

        logger.debug(f"Vision OCR returned {len(annotations)} annotations in {latency:.2f}s")
        return OcrResponse(text=text, raw=result, meta={"latency": latency, "annotation_count": len(annotations)})

    async def health_check(self) -> bool:
        return bool(self.api_key) and not self.client.is_closed

    async def aclose(self) -> None:
        await self.client.aclose()
