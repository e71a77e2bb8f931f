from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, StrictBool, StrictStr


class ScanStage(str, Enum):
    RECEIVED_IMAGE = "received_image"
    VALIDATED = "validated"
    OCR_COMPLETE = "ocr_complete"
    CLASSIFICATION_REQUESTED = "classification_requested"
    PARSED = "parsed"
    DONE = "done"
    FAILED = "failed"

class ErrorKind(str, Enum):
    INVALID_IMAGE = "invalid_image"
    OCR_EMPTY = "ocr_empty"
    UPSTREAM_FAILURE = "upstream_failure"
    MALFORMED_RESPONSE = "malformed_response"

# shown to the user as-is; never include upstream error text or ocr content
USER_MESSAGES: Dict[ErrorKind, str] = {
    ErrorKind.INVALID_IMAGE: "圖片無效",
    ErrorKind.OCR_EMPTY: "OCR 未偵測到文字",
    ErrorKind.UPSTREAM_FAILURE: "辨識服務暫時無法使用，請稍後再試",
    ErrorKind.MALFORMED_RESPONSE: "OCR/GPT 分析失敗",
}


class ScanError(Exception):
    """A per-request failure, tagged with the stage it happened in."""

    def __init__(self, kind: ErrorKind, stage: ScanStage, detail: str = ""):
        self.kind = kind
        self.stage = stage
        self.detail = detail #for logs only
        super().__init__(f"{kind.value} at {stage.value}: {detail}" if detail else f"{kind.value} at {stage.value}")

    @property
    def message(self) -> str:
        return USER_MESSAGES[self.kind]


# Labels of the early contract revisions
class DietLabel(str, Enum):
    FULLY_VEGETARIAN = "fully_vegetarian"
    VEGETARIAN_DAIRY_EGG = "vegetarian_dairy_egg"
    VEGETARIAN_PUNGENT = "vegetarian_pungent"
    NON_VEGETARIAN = "non_vegetarian"
    INDETERMINATE = "indeterminate"

class LabelType(str, Enum):
    """The five labels exactly as the v2 prompt asks the model to write them."""
    FULLY_VEGETARIAN = "全素"
    VEGETARIAN_DAIRY_EGG = "蛋奶素"
    VEGETARIAN_PUNGENT = "五葷素"
    NON_VEGETARIAN = "非素食"
    INDETERMINATE = "無法判斷"

    @property
    def diet_label(self) -> DietLabel:
        return DietLabel[self.name]

# Severity scale of the current revision
class Severity(str, Enum):
    CLEAR = "clear"
    CAUTION = "caution"
    WARNING = "warning"
    UNKNOWN = "unknown"

class FlagLevel(str, Enum):
    CAUTION = "caution"
    WARNING = "warning"


class Verdict(BaseModel):
    """Common read interface over every contract revision's verdict."""

    @property
    def label(self) -> str:
        raise NotImplementedError

    @property
    def explanations(self) -> List[str]:
        raise NotImplementedError

    @property
    def flagged(self) -> List[str]:
        raise NotImplementedError

    @property
    def suggestion_text(self) -> str:
        return ""


class DietaryVerdict(Verdict):
    # v1: two booleans and the keywords that decided them
    vegetarian: StrictBool
    vegan: StrictBool
    reasoning: StrictStr
    riskyKeywords: List[StrictStr]

    @property
    def label(self) -> str:
        if self.vegan:
            return DietLabel.FULLY_VEGETARIAN.value
        if self.vegetarian:
            return DietLabel.VEGETARIAN_DAIRY_EGG.value
        return DietLabel.NON_VEGETARIAN.value

    @property
    def explanations(self) -> List[str]:
        return [self.reasoning]

    @property
    def flagged(self) -> List[str]:
        return list(self.riskyKeywords)


class LabelVerdict(Verdict):
    # v2: one of five labels
    type: LabelType
    reasoning: StrictStr
    riskyKeywords: List[StrictStr]

    @property
    def label(self) -> str:
        return self.type.diet_label.value

    @property
    def explanations(self) -> List[str]:
        return [self.reasoning]

    @property
    def flagged(self) -> List[str]:
        return list(self.riskyKeywords)


class IngredientFlag(BaseModel):
    ingredient: StrictStr
    level: Optional[FlagLevel] = None


class SeverityVerdict(Verdict):
    # v3: severity scale with per-ingredient flags
    type: Severity
    explanation: List[StrictStr]
    flags: List[IngredientFlag]
    suggestion: StrictStr = ""

    @property
    def label(self) -> str:
        return self.type.value

    @property
    def explanations(self) -> List[str]:
        return list(self.explanation)

    @property
    def flagged(self) -> List[str]:
        return [f.ingredient for f in self.flags]

    @property
    def suggestion_text(self) -> str:
        return self.suggestion


@dataclass(frozen=True)
class ScanInput:
    image: Optional[bytes]
    mime_type: Optional[str]
    filename: Optional[str] = None

@dataclass
class ScanResult:
    ocr_text: str
    verdict: Verdict
    prompt_ref: str
    guarded: bool = False #True when the minimum-content guard produced the verdict
    metadata: Dict[str, Any] = field(default_factory=dict)
