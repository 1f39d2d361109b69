"""AI Agents package."""

from src.agents.ai_agents import (
    ClassifierError,
    ClassifierInterface,
    ClassifierOutputError,
    ClassifierUnavailableError,
    GeminiClassifier,
    extract_json,
)

__all__ = [
    "ClassifierError",
    "ClassifierInterface",
    "ClassifierOutputError",
    "ClassifierUnavailableError",
    "GeminiClassifier",
    "extract_json",
]
