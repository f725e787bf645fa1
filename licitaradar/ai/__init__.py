"""AI module - Gemini client, classification, filter extraction and analysis."""

from licitaradar.ai.schemas import RecordAnalysis, StructuredFilter
from licitaradar.ai.llm_client import GeminiClient, LLMClient
from licitaradar.ai.relevance_classifier import ClassificationProgress, RelevanceClassifier
from licitaradar.ai.filter_extractor import FilterExtractor
from licitaradar.ai.record_analyzer import RecordAnalyzer

__all__ = [
    # Schemas
    "RecordAnalysis",
    "StructuredFilter",
    # Clients and stages
    "GeminiClient",
    "LLMClient",
    "ClassificationProgress",
    "RelevanceClassifier",
    "FilterExtractor",
    "RecordAnalyzer",
]
