"""
Configuration Management for the Suggestion Engine

Loads configuration from ~/.suggestion_engine/config.json and environment
variables. Configuration objects are passed explicitly through every
pipeline stage; nothing here is read at import time by the pipeline.
"""

import os
import json
import logging
from pathlib import Path
from dataclasses import dataclass, field

logger = logging.getLogger("suggestion_engine.common.config")

# Default config paths
CONFIG_DIR = Path.home() / ".suggestion_engine"
CONFIG_PATH = CONFIG_DIR / "config.json"


@dataclass
class ThresholdConfig:
    """Named gating thresholds"""
    T_action: float = 0.5
    T_out_of_scope: float = 0.4
    T_overall_min: float = 0.65
    T_section_min: float = 0.6
    T_generic: float = 0.55
    T_attach: float = 0.80
    MIN_EVIDENCE_CHARS: int = 120


@dataclass
class GeneratorConfig:
    """Suggestion generator configuration"""
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    max_suggestions: int = 5
    enable_debug: bool = False
    use_llm_classifiers: bool = False
    embedding_enabled: bool = False
    llm_timeout_seconds: float = 10.0
    llm_blend_weight: float = 0.7


@dataclass
class EmbeddingConfig:
    """Embedding model configuration"""
    mode: str = "femb"  # fastembed (on-device)
    model: str = "BAAI/bge-small-en-v1.5"


@dataclass
class LLMConfig:
    """LLM provider configuration for the optional intent classifier"""
    provider: str = "anthropic"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    google_api_key: str = ""
    google_model: str = "gemini-2.0-flash-exp"
    classifier_model: str = ""


@dataclass
class EngineConfig:
    """Main engine configuration"""
    generator: GeneratorConfig = field(default_factory=GeneratorConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    _env_sourced_keys: set = field(default_factory=set, repr=False)


def _parse_threshold_config(data: dict) -> ThresholdConfig:
    """Parse thresholds section from config dict"""
    threshold_data = data.get("thresholds", {})
    defaults = ThresholdConfig()
    return ThresholdConfig(
        T_action=float(threshold_data.get("T_action", defaults.T_action)),
        T_out_of_scope=float(threshold_data.get("T_out_of_scope", defaults.T_out_of_scope)),
        T_overall_min=float(threshold_data.get("T_overall_min", defaults.T_overall_min)),
        T_section_min=float(threshold_data.get("T_section_min", defaults.T_section_min)),
        T_generic=float(threshold_data.get("T_generic", defaults.T_generic)),
        T_attach=float(threshold_data.get("T_attach", defaults.T_attach)),
        MIN_EVIDENCE_CHARS=int(threshold_data.get("MIN_EVIDENCE_CHARS", defaults.MIN_EVIDENCE_CHARS)),
    )


def _parse_generator_config(data: dict) -> GeneratorConfig:
    """Parse generator section from config dict"""
    generator_data = data.get("generator", {})
    return GeneratorConfig(
        thresholds=_parse_threshold_config(generator_data),
        max_suggestions=generator_data.get("max_suggestions", 5),
        enable_debug=generator_data.get("enable_debug", False),
        use_llm_classifiers=generator_data.get("use_llm_classifiers", False),
        embedding_enabled=generator_data.get("embedding_enabled", False),
        llm_timeout_seconds=generator_data.get("llm_timeout_seconds", 10.0),
        llm_blend_weight=generator_data.get("llm_blend_weight", 0.7),
    )


def _parse_embedding_config(data: dict) -> EmbeddingConfig:
    """Parse embedding section from config dict"""
    embedding_data = data.get("embedding", {})
    return EmbeddingConfig(
        mode=embedding_data.get("mode", "femb"),
        model=embedding_data.get("model", "BAAI/bge-small-en-v1.5"),
    )


def _parse_llm_config(data: dict) -> LLMConfig:
    """Parse llm section from config dict"""
    llm_data = data.get("llm", {})
    return LLMConfig(
        provider=llm_data.get("provider", "anthropic"),
        anthropic_api_key=llm_data.get("anthropic_api_key", ""),
        anthropic_model=llm_data.get("anthropic_model", "claude-sonnet-4-20250514"),
        openai_api_key=llm_data.get("openai_api_key", ""),
        openai_model=llm_data.get("openai_model", "gpt-4o-mini"),
        google_api_key=llm_data.get("google_api_key", ""),
        google_model=llm_data.get("google_model", "gemini-2.0-flash-exp"),
        classifier_model=llm_data.get("classifier_model", ""),
    )


def _env_flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


def load_config() -> EngineConfig:
    """
    Load configuration from file and environment variables.

    Priority (highest to lowest):
    1. Environment variables
    2. Config file (~/.suggestion_engine/config.json)
    3. Default values
    """
    config = EngineConfig()

    # Load from config file if exists
    if CONFIG_PATH.exists():
        try:
            with open(CONFIG_PATH) as f:
                data = json.load(f)

            config.generator = _parse_generator_config(data)
            config.llm = _parse_llm_config(data)
            config.embedding = _parse_embedding_config(data)
        except (json.JSONDecodeError, IOError, ValueError, TypeError) as e:
            logger.warning("Failed to load config file %s: %s", CONFIG_PATH, e)

    # Threshold env var overrides
    _env_threshold_map = {
        "SUGGEST_T_ACTION": "T_action",
        "SUGGEST_T_OUT_OF_SCOPE": "T_out_of_scope",
        "SUGGEST_T_OVERALL_MIN": "T_overall_min",
        "SUGGEST_T_SECTION_MIN": "T_section_min",
        "SUGGEST_T_GENERIC": "T_generic",
        "SUGGEST_T_ATTACH": "T_attach",
    }
    for env_var, attr in _env_threshold_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.generator.thresholds, attr, float(val))

    if os.getenv("SUGGEST_MAX_SUGGESTIONS"):
        config.generator.max_suggestions = int(os.getenv("SUGGEST_MAX_SUGGESTIONS"))
    if os.getenv("SUGGEST_ENABLE_DEBUG"):
        config.generator.enable_debug = _env_flag(os.getenv("SUGGEST_ENABLE_DEBUG"))
    if os.getenv("SUGGEST_USE_LLM"):
        config.generator.use_llm_classifiers = _env_flag(os.getenv("SUGGEST_USE_LLM"))
    if os.getenv("SUGGEST_EMBEDDINGS"):
        config.generator.embedding_enabled = _env_flag(os.getenv("SUGGEST_EMBEDDINGS"))

    if os.getenv("EMBEDDING_MODEL"):
        config.embedding.model = os.getenv("EMBEDDING_MODEL")

    # LLM env var overrides (track env-sourced keys)
    _env_llm_map = {
        "ANTHROPIC_API_KEY": "anthropic_api_key",
        "OPENAI_API_KEY": "openai_api_key",
        "GOOGLE_API_KEY": "google_api_key",
        "GEMINI_API_KEY": "google_api_key",
        "SUGGEST_LLM_PROVIDER": "provider",
    }
    for env_var, attr in _env_llm_map.items():
        val = os.getenv(env_var)
        if val:
            setattr(config.llm, attr, val)
            config._env_sourced_keys.add(attr)

    return config


def save_config(config: EngineConfig) -> None:
    """Save configuration to file.

    API key fields that were sourced from environment variables are written
    as empty strings so that secrets are not persisted to disk.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)

    env_sourced = getattr(config, "_env_sourced_keys", set())

    _llm_api_key_fields = {
        "anthropic_api_key", "openai_api_key", "google_api_key",
    }
    llm_section = {
        "provider": config.llm.provider,
        "anthropic_api_key": config.llm.anthropic_api_key,
        "anthropic_model": config.llm.anthropic_model,
        "openai_api_key": config.llm.openai_api_key,
        "openai_model": config.llm.openai_model,
        "google_api_key": config.llm.google_api_key,
        "google_model": config.llm.google_model,
        "classifier_model": config.llm.classifier_model,
    }
    for key in _llm_api_key_fields:
        if key in env_sourced:
            llm_section[key] = ""

    thresholds = config.generator.thresholds
    data = {
        "generator": {
            "thresholds": {
                "T_action": thresholds.T_action,
                "T_out_of_scope": thresholds.T_out_of_scope,
                "T_overall_min": thresholds.T_overall_min,
                "T_section_min": thresholds.T_section_min,
                "T_generic": thresholds.T_generic,
                "T_attach": thresholds.T_attach,
                "MIN_EVIDENCE_CHARS": thresholds.MIN_EVIDENCE_CHARS,
            },
            "max_suggestions": config.generator.max_suggestions,
            "enable_debug": config.generator.enable_debug,
            "use_llm_classifiers": config.generator.use_llm_classifiers,
            "embedding_enabled": config.generator.embedding_enabled,
            "llm_timeout_seconds": config.generator.llm_timeout_seconds,
            "llm_blend_weight": config.generator.llm_blend_weight,
        },
        "llm": llm_section,
        "embedding": {
            "mode": config.embedding.mode,
            "model": config.embedding.model,
        },
    }

    with open(CONFIG_PATH, "w") as f:
        json.dump(data, f, indent=2)

    # Set secure permissions
    CONFIG_PATH.chmod(0o600)
