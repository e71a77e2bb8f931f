# tests/prompts/test_prompts.py

import pytest
from pathlib import Path
import tempfile
import shutil

from vegscan.models.prompts import PromptManager, PromptConfig

SHIPPED_PROMPTS = Path(__file__).parents[2] / "vegscan" / "prompts"


@pytest.fixture
def temp_prompts_dir():
    """Create a temporary prompts directory with test data"""
    temp_dir = tempfile.mkdtemp()
    prompts_path = Path(temp_dir)

    classify_v1 = prompts_path / "scan" / "classify" / "v1"
    classify_v1.mkdir(parents=True)

    (classify_v1 / "config.yaml").write_text("""
schema: severity
min_chars: 20
stop_sequences:
  - "END"
""", encoding="utf-8")

    (classify_v1 / "system.j2").write_text("""You classify ingredient labels.
Inputs shorter than {{ min_chars }} characters are unknown.""", encoding="utf-8")

    (classify_v1 / "user.j2").write_text("""Ingredients: {{ ocr_text }}
{% if brand is defined %}
Brand: {{ brand }}
{% endif %}""", encoding="utf-8")

    # a prompt without config file
    plain_v1 = prompts_path / "scan" / "plain" / "v1"
    plain_v1.mkdir(parents=True)
    (plain_v1 / "system.j2").write_text("Plain system prompt.", encoding="utf-8")
    (plain_v1 / "user.j2").write_text("Text: {{ ocr_text }}", encoding="utf-8")

    # a prompt with an empty config
    minimal_v1 = prompts_path / "minimal" / "test" / "v1"
    minimal_v1.mkdir(parents=True)
    (minimal_v1 / "config.yaml").write_text("", encoding="utf-8")
    (minimal_v1 / "system.j2").write_text("Simple system prompt.", encoding="utf-8")
    (minimal_v1 / "user.j2").write_text("User: {{ input }}", encoding="utf-8")

    yield prompts_path

    shutil.rmtree(temp_dir)


@pytest.fixture
def manager(temp_prompts_dir):
    """Create a PromptManager with test data"""
    return PromptManager(temp_prompts_dir)


# ============ Prompt Loading Tests ============

class TestPromptLoading:
    def test_load_valid_prompt_with_config(self, manager):
        """Load a prompt that exists with config file"""
        config = manager.load_prompt("scan/classify@v1")

        assert config.name == "scan/classify"
        assert config.version == "v1"
        assert config.stop_sequences == ["END"]
        assert config.settings == {"schema": "severity", "min_chars": 20}
        assert "{{ ocr_text }}" in config.user_template

    def test_load_prompt_without_config(self, manager):
        """Load a prompt without config file"""
        config = manager.load_prompt("scan/plain@v1")

        assert config.stop_sequences is None
        assert config.settings == {}

    def test_load_prompt_with_empty_config(self, manager):
        config = manager.load_prompt("minimal/test@v1")

        assert config.stop_sequences is None
        assert config.settings == {}

    def test_load_missing_prompt(self, manager):
        """Fail clearly when prompt doesn't exist"""
        with pytest.raises(FileNotFoundError, match="Prompt not found"):
            manager.load_prompt("scan/classify@v99")

    def test_load_missing_system_template(self, temp_prompts_dir, manager):
        broken_prompt = temp_prompts_dir / "broken" / "test" / "v1"
        broken_prompt.mkdir(parents=True)
        (broken_prompt / "user.j2").write_text("User prompt")

        with pytest.raises(FileNotFoundError, match="Template file not found"):
            manager.load_prompt("broken/test@v1")

    def test_invalid_reference_format(self, manager):
        """Fail clearly on bad reference format"""
        with pytest.raises(ValueError, match="Invalid prompt reference"):
            manager.load_prompt("scan/classify")

    def test_caching(self, manager):
        """Verify prompts are cached after first load"""
        config1 = manager.load_prompt("scan/classify@v1")
        config2 = manager.load_prompt("scan/classify@v1")

        assert config1 is config2

    def test_prompt_config_ref_property(self, manager):
        config = manager.load_prompt("scan/classify@v1")
        assert isinstance(config, PromptConfig)
        assert config.ref == "scan/classify@v1"


# ============ Prompt Rendering Tests ============

class TestPromptRendering:
    def test_render_with_all_variables(self, manager):
        messages = manager.render(
            "scan/classify@v1",
            {"ocr_text": "糖、鹽、蜂蜜", "min_chars": 20, "brand": "Viva"}
        )

        assert [m["role"] for m in messages] == ["system", "user"]
        assert "shorter than 20 characters" in messages[0]["content"]
        assert "Ingredients: 糖、鹽、蜂蜜" in messages[1]["content"]
        assert "Brand: Viva" in messages[1]["content"]

    def test_render_optional_variable_omitted(self, manager):
        messages = manager.render("scan/classify@v1", {"ocr_text": "糖", "min_chars": 20})

        assert "Brand:" not in messages[1]["content"]

    def test_render_missing_required_variable(self, manager):
        """Fail clearly when required variable is missing"""
        with pytest.raises(ValueError, match="Missing required variable"):
            manager.render("scan/classify@v1", {"min_chars": 20})

    def test_render_is_deterministic(self, manager):
        variables = {"ocr_text": "成分：水、糖、大豆", "min_chars": 20}
        assert manager.render("scan/classify@v1", variables) == manager.render("scan/classify@v1", variables)


# ============ Error Handling Tests ============

class TestErrorHandling:
    def test_prompt_manager_invalid_directory(self):
        with pytest.raises(FileNotFoundError, match="Prompts dir not found"):
            PromptManager(Path("/nonexistent/directory"))

    def test_config_with_invalid_yaml(self, temp_prompts_dir, manager):
        bad_config = temp_prompts_dir / "bad" / "yaml" / "v1"
        bad_config.mkdir(parents=True)
        (bad_config / "config.yaml").write_text("invalid: yaml: [unclosed")
        (bad_config / "system.j2").write_text("System")
        (bad_config / "user.j2").write_text("User")

        with pytest.raises(ValueError, match="Invalid YAML"):
            manager.load_prompt("bad/yaml@v1")


# ============ Revision Discovery Tests ============

class TestRevisions:
    def test_versions_sorted_numerically(self, temp_prompts_dir, manager):
        for version in ("v10", "v2"):
            path = temp_prompts_dir / "scan" / "classify" / version
            path.mkdir(parents=True)
            (path / "system.j2").write_text("s", encoding="utf-8")
            (path / "user.j2").write_text("u", encoding="utf-8")
        (temp_prompts_dir / "scan" / "classify" / "drafts").mkdir()

        assert manager.versions("scan/classify") == ["v1", "v2", "v10"]

    def test_versions_of_unknown_prompt(self, manager):
        assert manager.versions("scan/nothing") == []

    @pytest.mark.parametrize("ref", ["scan/classify", "@v1", "scan/classify@", "../etc@v1", "scan classify@v1"])
    def test_malformed_references(self, manager, ref):
        with pytest.raises(ValueError, match="Invalid prompt reference"):
            manager.load_prompt(ref)

    def test_template_syntax_error_at_load(self, temp_prompts_dir, manager):
        path = temp_prompts_dir / "broken" / "syntax" / "v1"
        path.mkdir(parents=True)
        (path / "system.j2").write_text("{% if %}", encoding="utf-8")
        (path / "user.j2").write_text("{{ ocr_text }}", encoding="utf-8")

        with pytest.raises(ValueError, match="template syntax error"):
            manager.load_prompt("broken/syntax@v1")
        assert "broken/syntax@v1" not in manager._cache

    def test_stop_sequences_must_be_strings(self, temp_prompts_dir, manager):
        path = temp_prompts_dir / "bad" / "stop" / "v1"
        path.mkdir(parents=True)
        (path / "config.yaml").write_text("stop_sequences: END\n", encoding="utf-8")
        (path / "system.j2").write_text("s", encoding="utf-8")
        (path / "user.j2").write_text("u", encoding="utf-8")

        with pytest.raises(ValueError, match="stop_sequences"):
            manager.load_prompt("bad/stop@v1")


# ============ Shipped Contract Prompts ============

class TestShippedPrompts:
    """The prompt directories packaged with vegscan must load and render."""

    @pytest.fixture
    def shipped(self):
        return PromptManager(SHIPPED_PROMPTS)

    @pytest.mark.parametrize("version,schema", [("v1", "dietary"), ("v2", "label"), ("v3", "severity")])
    def test_each_version_names_its_schema(self, shipped, version, schema):
        config = shipped.load_prompt(f"scan/classify@{version}")
        assert config.settings["schema"] == schema

    def test_v3_instructs_only_a_json_block(self, shipped):
        messages = shipped.render("scan/classify@v3", {"ocr_text": "成分：麵粉、雞蛋、牛奶", "min_chars": 20})
        system = messages[0]["content"]

        for label in ("clear", "caution", "warning", "unknown"):
            assert f'"{label}"' in system
        assert "```json" in system
        assert "少於 20 個字" in system
        assert "成分：麵粉、雞蛋、牛奶" in messages[1]["content"]

    def test_v2_lists_five_labels(self, shipped):
        messages = shipped.render("scan/classify@v2", {"ocr_text": "x", "min_chars": 20})
        for label in ("全素", "蛋奶素", "五葷素", "非素食", "無法判斷"):
            assert label in messages[0]["content"]
