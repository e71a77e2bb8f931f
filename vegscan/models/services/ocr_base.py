from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional


class OcrError(RuntimeError):
    """Network or service failure while extracting text. An image with no text is not an error."""


@dataclass(frozen=True)
class OcrRequest:
    image: bytes
    language_hints: Optional[List[str]] = None  # e.g. ["zh-Hant", "en"]

@dataclass(frozen=True)
class OcrResponse:
    text: str              # primary full-text annotation, "" when nothing was read
    raw: Any               # engine-native payload
    meta: Dict[str, Any]   # timings, annotation counts

class OcrEngine:
    language_hints: Optional[List[str]] = None  # forwarded with every extract_text call

    async def health_check(self) -> bool: raise NotImplementedError
    async def ocr(self, req: OcrRequest) -> OcrResponse: raise NotImplementedError

    async def extract_text(self, image: bytes) -> str:
        response = await self.ocr(OcrRequest(image=image, language_hints=self.language_hints))
        return response.text

    async def aclose(self) -> None:
        return None
