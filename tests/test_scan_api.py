"""
Tests for the scan API endpoint.

Tests the FastAPI scan endpoint including:
- Multipart request handling
- Error kind to HTTP status mapping
- Response shape expected by the web client
"""

import json
import pytest
from pathlib import Path
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, Mock

from vegscan.api.main import create_app
from vegscan.api.dependencies.services import get_scan_pipeline, get_model_manager
from vegscan.models.manager import ModelManager, TaskConfig
from vegscan.models.prompts import PromptManager
from vegscan.models.providers.base import ModelResponse
from vegscan.models.services.ocr_base import OcrEngine, OcrError, OcrRequest, OcrResponse
from vegscan.pipeline.scan.contracts import load_contract
from vegscan.pipeline.scan.scan import ScanPipeline
from vegscan.pipeline.scan.types import ErrorKind, ScanError, ScanStage, USER_MESSAGES

SHIPPED_PROMPTS = Path(__file__).parents[1] / "vegscan" / "prompts"
LABEL_TEXT = "成分：腰果、糖、棕櫚油、麥芽糊精、蜂蜜、鹽、小麥纖維、玉米糖漿"


class StubOcr(OcrEngine):
    def __init__(self, text="", error=None):
        self.text = text
        self.error = error

    async def ocr(self, req: OcrRequest) -> OcrResponse:
        if self.error:
            raise self.error
        return OcrResponse(text=self.text, raw=None, meta={})

    async def health_check(self) -> bool:
        return True


def build_pipeline(ocr_text="", ocr_error=None, model_reply=None):
    prompts = PromptManager(SHIPPED_PROMPTS)
    manager = Mock(spec=ModelManager)
    manager.prompts = prompts
    manager.config = {}
    if model_reply is not None:
        manager.call.return_value = ModelResponse(content=model_reply, raw=None, meta={})
    pipeline = ScanPipeline(
        manager,
        contract=load_contract(prompts, "scan/classify@v3"),
        ocr=StubOcr(text=ocr_text, error=ocr_error),
    )
    return pipeline, manager


def mock_pipeline(**kwargs):
    pipeline = Mock()
    pipeline.max_image_bytes = 1024
    pipeline.classify_label = AsyncMock(**kwargs)
    return pipeline


def client_for(pipeline):
    app = create_app()
    app.dependency_overrides[get_scan_pipeline] = lambda: pipeline
    return TestClient(app)


def upload(client, data=b"\x89PNG fake", content_type="image/png"):
    return client.post("/api/scan", files={"image": ("label.png", data, content_type)})


class TestScanEndpoint:
    def test_caution_verdict(self):
        """Scenario B over HTTP"""
        body = {
            "type": "caution",
            "explanation": ["蜂蜜為蜜蜂產物"],
            "flags": [{"ingredient": "蜂蜜", "level": "caution"}],
            "suggestion": "",
        }
        pipeline, _ = build_pipeline(LABEL_TEXT, model_reply="```json\n" + json.dumps(body, ensure_ascii=False) + "\n```")

        response = upload(client_for(pipeline))

        assert response.status_code == 200
        data = response.json()
        assert data["ocrText"] == LABEL_TEXT
        assert data["result"] == body
        assert data["label"] == "caution"
        assert data["flagged"] == ["蜂蜜"]
        assert data["promptRef"] == "scan/classify@v3"

    def test_short_label(self):
        """Scenario A over HTTP"""
        pipeline, manager = build_pipeline("玉米糖漿、棕櫚油、鹽")

        response = upload(client_for(pipeline))

        assert response.status_code == 200
        assert response.json()["result"]["type"] == "unknown"
        assert response.json()["result"]["flags"] == []
        manager.call.assert_not_called()

    def test_missing_image_field(self):
        pipeline, _ = build_pipeline(LABEL_TEXT)

        response = client_for(pipeline).post("/api/scan", data={"note": "no image"})

        assert response.status_code == 400
        assert response.json() == {"error": USER_MESSAGES[ErrorKind.INVALID_IMAGE]}

    def test_text_field_instead_of_file(self):
        """
        Test: the image field arrives as a plain form value
        How: Post multipart data with image="x" and no file part
        Ensures: The client gets the invalid-image body, not a validation error
        """
        pipeline, manager = build_pipeline(LABEL_TEXT)

        response = client_for(pipeline).post("/api/scan", data={"image": "not-a-file"})

        assert response.status_code == 400
        assert response.json() == {"error": USER_MESSAGES[ErrorKind.INVALID_IMAGE]}
        manager.call.assert_not_called()

    def test_oversized_upload_never_reaches_pipeline(self):
        pipeline = mock_pipeline()

        response = upload(client_for(pipeline), data=b"\x89PNG" + b"0" * 2048)

        assert response.status_code == 400
        assert response.json() == {"error": USER_MESSAGES[ErrorKind.INVALID_IMAGE]}
        pipeline.classify_label.assert_not_called()

    def test_upload_at_the_limit_is_passed_through(self):
        body = {"type": "clear", "explanation": [], "flags": [], "suggestion": ""}
        pipeline, _ = build_pipeline(LABEL_TEXT, model_reply="```json\n" + json.dumps(body) + "\n```")
        pipeline.max_image_bytes = 64

        response = upload(client_for(pipeline), data=b"\x89PNG" + b"0" * 60)

        assert response.status_code == 200

    def test_non_image_upload(self):
        pipeline, _ = build_pipeline(LABEL_TEXT)

        response = upload(client_for(pipeline), data=b"%PDF-1.7", content_type="application/pdf")

        assert response.status_code == 400
        assert response.json()["error"] == "圖片無效"

    def test_no_text_detected(self):
        pipeline, manager = build_pipeline("   ")

        response = upload(client_for(pipeline))

        assert response.status_code == 400
        assert response.json() == {"error": USER_MESSAGES[ErrorKind.OCR_EMPTY]}
        manager.call.assert_not_called()

    def test_reply_without_block_is_500(self):
        """Scenario C over HTTP"""
        pipeline, _ = build_pipeline(LABEL_TEXT, model_reply="這個產品是素食。")

        response = upload(client_for(pipeline))

        assert response.status_code == 500
        assert response.json() == {"error": USER_MESSAGES[ErrorKind.MALFORMED_RESPONSE]}

    def test_ocr_outage_is_502(self):
        """Scenario D over HTTP"""
        pipeline, manager = build_pipeline(ocr_error=OcrError("Vision API error: HTTP 503"))

        response = upload(client_for(pipeline))

        assert response.status_code == 502
        assert "503" not in response.json()["error"]
        manager.call.assert_not_called()

    def test_unexpected_error_is_500_without_detail(self):
        pipeline = mock_pipeline(side_effect=RuntimeError("boom: internal detail"))

        response = upload(client_for(pipeline))

        assert response.status_code == 500
        assert "boom" not in response.text

    @pytest.mark.parametrize("kind,status", [
        (ErrorKind.INVALID_IMAGE, 400),
        (ErrorKind.OCR_EMPTY, 400),
        (ErrorKind.UPSTREAM_FAILURE, 502),
        (ErrorKind.MALFORMED_RESPONSE, 500),
    ])
    def test_status_mapping(self, kind, status):
        pipeline = mock_pipeline(side_effect=ScanError(kind, ScanStage.VALIDATED, "detail"))

        response = upload(client_for(pipeline))

        assert response.status_code == status
        assert response.json() == {"error": USER_MESSAGES[kind]}


class TestHealthEndpoints:
    @pytest.fixture
    def manager(self):
        manager = Mock(spec=ModelManager)
        manager.task_config.return_value = TaskConfig(provider="gemini", model="gemini-1.5-flash", params={}, prompt_ref="scan/classify@v3")
        manager.ocr = StubOcr()
        manager.prompts = PromptManager(SHIPPED_PROMPTS)
        return manager

    @pytest.fixture
    def client(self, manager):
        app = create_app()
        app.dependency_overrides[get_model_manager] = lambda: manager
        return TestClient(app)

    def test_health(self, client):
        response = client.get("/health/")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["dependencies"]["classify_provider"] == "gemini (gemini-1.5-flash)"
        assert data["dependencies"]["prompt"] == "scan/classify@v3"
        assert data["dependencies"]["prompt_versions"] == "v1, v2, v3"

    def test_ready(self, client, manager):
        manager.health_check.return_value = True

        response = client.get("/health/ready")

        assert response.status_code == 200
        assert response.json()["ready"] is True
        manager.health_check.assert_called_once_with("classify")

    def test_not_ready_when_provider_down(self, client, manager):
        manager.health_check.return_value = False

        response = client.get("/health/ready")

        assert response.status_code == 503
        assert response.json()["classify_provider"] is False

    def test_root(self, client):
        assert client.get("/").json()["endpoints"]["scan"] == "/api/scan"
