"""
Suggestion Engine Common Module

Shared infrastructure for the extraction pipeline and batch evaluation.
"""

from .config import EngineConfig, GeneratorConfig, ThresholdConfig, load_config
from .embedding_service import EmbeddingService
from .llm_client import LLMClient
from .run_context import RunContext

__all__ = [
    "EngineConfig",
    "GeneratorConfig",
    "ThresholdConfig",
    "load_config",
    "EmbeddingService",
    "LLMClient",
    "RunContext",
]
