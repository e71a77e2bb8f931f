"""
API models for the scan endpoint.

Field names follow the web client (camelCase ``ocrText``), which predates
this service.
"""

from pydantic import BaseModel, Field
from typing import Any, Dict, List


class ScanResponse(BaseModel):
    """Successful scan: the OCR text and the verdict as the active contract defines it."""
    ocrText: str = Field(..., description="Text read from the label")
    result: Dict[str, Any] = Field(..., description="Verdict fields of the active contract revision")
    label: str = Field(..., description="Normalised label (e.g. 'caution' or 'vegetarian_dairy_egg')")
    flagged: List[str] = Field(default_factory=list, description="Ingredients the verdict flags")
    promptRef: str = Field(..., description="Contract revision that produced the verdict")

    class Config:
        json_schema_extra = {
            "example": {
                "ocrText": "成分:腰果、糖、棕櫚油、麥芽糊精、蜂蜜、鹽、麥芽寡糖、小麥纖維、玉米糖漿",
                "result": {
                    "type": "caution",
                    "explanation": ["蜂蜜為蜜蜂產物，部分素食者不食用"],
                    "flags": [{"ingredient": "蜂蜜", "level": "caution"}],
                    "suggestion": "",
                },
                "label": "caution",
                "flagged": ["蜂蜜"],
                "promptRef": "scan/classify@v3",
            }
        }
