"""LLM pipeline: model invoker, recorder, retrieval, expert, orchestrator and chat."""

from .base import (
    AgentCallResult,
    AgentConfig,
    ConversationResult,
    ModelInvoker,
    StageResult,
    TokenUsage,
)
from .chat import ChatContext, ChatResult, ExpertChat, extract_keywords
from .expert import Expert
from .orchestrator import EntryOrchestrator, ProcessResult, StageStatus
from .recorder import Recorder
from .retrieval import (
    EmbeddingScorer,
    Retriever,
    SimilarityScorer,
    TagOverlapScorer,
    infer_categories,
)
from .schema import parse_expert_analysis, parse_fact_card

__all__ = [
    "AgentCallResult",
    "AgentConfig",
    "ChatContext",
    "ChatResult",
    "ConversationResult",
    "EmbeddingScorer",
    "EntryOrchestrator",
    "Expert",
    "ExpertChat",
    "ModelInvoker",
    "ProcessResult",
    "Recorder",
    "Retriever",
    "SimilarityScorer",
    "StageResult",
    "StageStatus",
    "TagOverlapScorer",
    "TokenUsage",
    "extract_keywords",
    "infer_categories",
    "parse_expert_analysis",
    "parse_fact_card",
]
