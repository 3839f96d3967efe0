"""Application ports package.

Re-exports the ports the use cases depend on.
"""

from study_qa.application.ports.document_store_port import (
    DocumentScope,
    DocumentStorePort,
    SourceDocument,
)
from study_qa.application.ports.embedding_port import EmbeddingPort
from study_qa.application.ports.llm_port import ChatMessage, LLMPort, LLMResponse
from study_qa.application.ports.telemetry_port import NullTelemetry, TelemetryPort
from study_qa.application.ports.vector_index_port import VectorIndexPort
from study_qa.application.ports.work_queue_port import WorkQueuePort

__all__ = [
    "ChatMessage",
    "DocumentScope",
    "DocumentStorePort",
    "EmbeddingPort",
    "LLMPort",
    "LLMResponse",
    "NullTelemetry",
    "SourceDocument",
    "TelemetryPort",
    "VectorIndexPort",
    "WorkQueuePort",
]
