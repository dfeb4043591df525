"""Tests for engine configuration loading and saving."""

import json
import os
import pytest
from unittest.mock import patch


class TestDefaults:
    def test_threshold_defaults(self):
        from suggestion_engine.common.config import ThresholdConfig
        t = ThresholdConfig()
        assert t.T_action == 0.5
        assert t.T_out_of_scope == 0.4
        assert t.T_overall_min == 0.65
        assert t.T_section_min == 0.6
        assert t.T_generic == 0.55
        assert t.T_attach == 0.80
        assert t.MIN_EVIDENCE_CHARS == 120

    def test_generator_defaults(self):
        from suggestion_engine.common.config import GeneratorConfig
        cfg = GeneratorConfig()
        assert cfg.max_suggestions == 5
        assert cfg.enable_debug is False
        assert cfg.use_llm_classifiers is False
        assert cfg.embedding_enabled is False

    def test_missing_file_gives_defaults(self, tmp_path):
        from suggestion_engine.common.config import load_config
        with patch("suggestion_engine.common.config.CONFIG_PATH", tmp_path / "absent.json"):
            cfg = load_config()
        assert cfg.generator.max_suggestions == 5
        assert cfg.llm.provider == "anthropic"
        assert cfg.embedding.mode == "femb"


class TestLoadConfig:
    def test_load_generator_section(self, tmp_path):
        from suggestion_engine.common.config import load_config
        config_data = {
            "generator": {
                "max_suggestions": 3,
                "enable_debug": True,
                "thresholds": {"T_action": 0.45, "T_attach": 0.9},
            },
            "llm": {"provider": "openai", "openai_api_key": "sk-test"},
        }
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps(config_data))

        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.generator.max_suggestions == 3
        assert cfg.generator.enable_debug is True
        assert cfg.generator.thresholds.T_action == 0.45
        assert cfg.generator.thresholds.T_attach == 0.9
        # untouched thresholds keep their defaults
        assert cfg.generator.thresholds.T_out_of_scope == 0.4
        assert cfg.llm.provider == "openai"
        assert cfg.llm.openai_api_key == "sk-test"

    def test_invalid_json_falls_back_to_defaults(self, tmp_path):
        from suggestion_engine.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{not json")

        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file):
            cfg = load_config()

        assert cfg.generator.thresholds.T_action == 0.5

    def test_env_overrides_file(self, tmp_path):
        from suggestion_engine.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"generator": {"max_suggestions": 3}}))

        env = {
            "SUGGEST_MAX_SUGGESTIONS": "7",
            "SUGGEST_T_ACTION": "0.55",
            "SUGGEST_USE_LLM": "true",
            "ANTHROPIC_API_KEY": "sk-ant-env",
        }
        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, env, clear=False):
            cfg = load_config()

        assert cfg.generator.max_suggestions == 7
        assert cfg.generator.thresholds.T_action == 0.55
        assert cfg.generator.use_llm_classifiers is True
        assert cfg.llm.anthropic_api_key == "sk-ant-env"
        assert "anthropic_api_key" in cfg._env_sourced_keys

    def test_env_flag_false(self, tmp_path):
        from suggestion_engine.common.config import load_config
        config_file = tmp_path / "config.json"
        config_file.write_text(json.dumps({"generator": {"embedding_enabled": True}}))

        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file), \
             patch.dict(os.environ, {"SUGGEST_EMBEDDINGS": "off"}, clear=False):
            cfg = load_config()

        assert cfg.generator.embedding_enabled is False


class TestSaveConfig:
    def test_save_omits_env_sourced_keys(self, tmp_path):
        from suggestion_engine.common.config import load_config, save_config
        config_file = tmp_path / "config.json"
        config_file.write_text("{}")

        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file), \
             patch("suggestion_engine.common.config.CONFIG_DIR", tmp_path), \
             patch.dict(os.environ, {"OPENAI_API_KEY": "sk-secret", "ANTHROPIC_API_KEY": ""}, clear=False):
            cfg = load_config()
            cfg.llm.anthropic_api_key = "sk-from-file"
            save_config(cfg)

        saved = json.loads(config_file.read_text())
        assert saved["llm"]["openai_api_key"] == ""
        assert saved["llm"]["anthropic_api_key"] == "sk-from-file"

    def test_save_round_trips_thresholds(self, tmp_path):
        from suggestion_engine.common.config import EngineConfig, load_config, save_config
        config_file = tmp_path / "config.json"

        cfg = EngineConfig()
        cfg.generator.thresholds.T_generic = 0.6
        cfg.generator.max_suggestions = 2
        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file), \
             patch("suggestion_engine.common.config.CONFIG_DIR", tmp_path):
            save_config(cfg)
            loaded = load_config()

        assert loaded.generator.thresholds.T_generic == 0.6
        assert loaded.generator.max_suggestions == 2

    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    def test_saved_file_is_private(self, tmp_path):
        from suggestion_engine.common.config import EngineConfig, save_config
        config_file = tmp_path / "config.json"
        with patch("suggestion_engine.common.config.CONFIG_PATH", config_file), \
             patch("suggestion_engine.common.config.CONFIG_DIR", tmp_path):
            save_config(EngineConfig())
        assert (config_file.stat().st_mode & 0o777) == 0o600
