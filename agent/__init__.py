"""
Agent package for the desktop assistant.

Provides the language-model analysis clients (Ollama and Gemini).
"""

from .llm_client import (
    LLMConfig,
    LLMConfigurationError,
    UnsupportedInputError,
    PromptTemplates,
    BaseAnalysisClient,
    OllamaAnalysisClient,
    GeminiAnalysisClient,
    parse_solution_response,
    create_llm_client,
)

__all__ = [
    "LLMConfig",
    "LLMConfigurationError",
    "UnsupportedInputError",
    "PromptTemplates",
    "BaseAnalysisClient",
    "OllamaAnalysisClient",
    "GeminiAnalysisClient",
    "parse_solution_response",
    "create_llm_client",
]
