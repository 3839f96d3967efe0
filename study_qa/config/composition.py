"""Dependency injection container with environment-driven wiring.

Single place for wiring; all other layers remain pure.
"""

from __future__ import annotations

from study_qa.application.dto.qa_dto import ClassifierParams, GenerationParams, RetrievalParams
from study_qa.application.dto.vectorize_dto import VectorizationParams
from study_qa.application.ports import (
    DocumentStorePort,
    EmbeddingPort,
    LLMPort,
    NullTelemetry,
    TelemetryPort,
    VectorIndexPort,
    WorkQueuePort,
)
from study_qa.application.use_cases.answer_question import SessionController
from study_qa.application.use_cases.classify_intent import IntentClassifier
from study_qa.application.use_cases.retrieve_context import ContextRetriever
from study_qa.application.use_cases.schedule_vectorization import (
    VectorizationScheduler,
    VectorizationWorker,
)
from study_qa.application.use_cases.stream_answer import AnswerStreamer
from study_qa.application.use_cases.vectorize_document import CorpusVectorizer
from study_qa.config.settings import AppSettings
from study_qa.domain.services.chunking import ChunkingParams


class Container:
    """Dependency injection container for application components.

    Responsibilities:
    1. Read settings (via AppSettings)
    2. Choose adapters based on settings (vector_backend, embedding_backend, ...)
    3. Inject dependencies into use cases

    Adapters are built lazily and cached; any of them can be pre-set through
    the constructor (tests, alternative document stores).
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        documents: DocumentStorePort | None = None,
        embedding: EmbeddingPort | None = None,
        index: VectorIndexPort | None = None,
        llm: LLMPort | None = None,
        work_queue: WorkQueuePort | None = None,
        telemetry: TelemetryPort | None = None,
    ) -> None:
        self.settings = settings or AppSettings()
        self._documents = documents
        self._embedding = embedding
        self._index = index
        self._llm = llm
        self._work_queue = work_queue
        self._telemetry = telemetry
        self._vectorizer: CorpusVectorizer | None = None

    # ===== Adapters =====

    def get_documents(self) -> DocumentStorePort:
        if self._documents is None:
            from study_qa.infrastructure.documents.in_memory_store import InMemoryDocumentStore

            self._documents = InMemoryDocumentStore()
        return self._documents

    def get_embedding(self) -> EmbeddingPort:
        if self._embedding is None:
            self._embedding = self._build_embedding()
        return self._embedding

    def get_index(self) -> VectorIndexPort:
        if self._index is None:
            self._index = self._build_index()
        return self._index

    def get_llm(self) -> LLMPort:
        if self._llm is None:
            self._llm = self._build_llm()
        return self._llm

    def get_work_queue(self) -> WorkQueuePort:
        if self._work_queue is None:
            self._work_queue = self._build_work_queue()
        return self._work_queue

    def get_telemetry(self) -> TelemetryPort:
        if self._telemetry is None:
            self._telemetry = self._build_telemetry()
        return self._telemetry

    # ===== Use Cases =====

    def get_classifier(self) -> IntentClassifier:
        s = self.settings
        return IntentClassifier(
            self.get_llm(),
            ClassifierParams(temperature=s.classifier_temperature, timeout_s=s.classifier_timeout_s),
        )

    def get_retriever(self) -> ContextRetriever:
        s = self.settings
        return ContextRetriever(
            self.get_embedding(),
            self.get_index(),
            RetrievalParams(
                top_k=s.retrieval_top_k,
                max_context_chars=s.max_context_chars,
                timeout_s=s.retrieval_timeout_s,
            ),
        )

    def get_streamer(self) -> AnswerStreamer:
        s = self.settings
        return AnswerStreamer(
            self.get_llm(),
            GenerationParams(
                temperature=s.answer_temperature,
                max_tokens=s.answer_max_tokens,
                timeout_s=s.generation_timeout_s,
                idle_timeout_s=s.generation_idle_timeout_s,
            ),
        )

    def new_session(self) -> SessionController:
        """A fresh controller; one per question."""
        return SessionController(
            documents=self.get_documents(),
            classifier=self.get_classifier(),
            retriever=self.get_retriever(),
            streamer=self.get_streamer(),
            telemetry=self.get_telemetry(),
        )

    def get_vectorizer(self) -> CorpusVectorizer:
        # shared instance: its per-document locks must be process-wide
        if self._vectorizer is None:
            s = self.settings
            self._vectorizer = CorpusVectorizer(
                documents=self.get_documents(),
                embedding=self.get_embedding(),
                index=self.get_index(),
                llm=self.get_llm(),
                params=VectorizationParams(
                    chunking=ChunkingParams(target_chars=s.chunk_size, overlap_chars=s.chunk_overlap),
                    embed_batch_size=s.embedding_batch_size,
                    summary_max_tokens=s.summary_max_tokens,
                    summary_timeout_s=s.summary_timeout_s,
                ),
                telemetry=self.get_telemetry(),
            )
        return self._vectorizer

    def get_scheduler(self) -> VectorizationScheduler:
        return VectorizationScheduler(
            self.get_documents(), self.get_work_queue(), topic=self.settings.vectorize_topic
        )

    def get_worker(self) -> VectorizationWorker:
        s = self.settings
        return VectorizationWorker(
            self.get_work_queue(),
            self.get_vectorizer(),
            topic=s.vectorize_topic,
            max_attempts=s.vectorize_max_attempts,
            backoff_base_s=s.vectorize_backoff_s,
        )

    # ===== Private Builder Methods =====

    def _build_embedding(self) -> EmbeddingPort:
        backend = self.settings.embedding_backend
        if backend == "openai":
            from study_qa.infrastructure.embeddings.openai_embedding_adapter import (
                OpenAIEmbeddingAdapter,
            )

            return OpenAIEmbeddingAdapter(
                api_key=self.settings.llm_api_key,
                model=self.settings.embedding_model,
                base_url=self.settings.llm_base_url or None,
            )
        if backend == "sentence_transformers":
            from study_qa.infrastructure.embeddings.sentence_transformers_adapter import (
                SentenceTransformersEmbeddingAdapter,
            )

            return SentenceTransformersEmbeddingAdapter(
                model_name=self.settings.embedding_model,
                device=self.settings.embedding_device,
                batch_size=self.settings.embedding_batch_size,
            )
        raise ValueError(f"Unknown EMBEDDING_BACKEND '{backend}'")

    def _build_index(self) -> VectorIndexPort:
        backend = self.settings.vector_backend
        if backend == "memory":
            from study_qa.infrastructure.vectorstore.in_memory_index import InMemoryVectorIndex

            return InMemoryVectorIndex()
        if backend == "qdrant":
            from study_qa.infrastructure.vectorstore.qdrant_index import (
                QdrantConfig,
                QdrantVectorIndex,
            )

            cfg = QdrantConfig(
                url=self.settings.qdrant_url,
                api_key=self.settings.qdrant_api_key or None,
                collection=self.settings.collection,
                prefer_grpc=self.settings.qdrant_prefer_grpc,
                timeout_s=self.settings.qdrant_timeout_s,
            )
            return QdrantVectorIndex(cfg)
        raise ValueError(f"Unknown VECTOR_BACKEND '{backend}'")

    def _build_llm(self) -> LLMPort:
        from study_qa.infrastructure.llm.openai_chat_adapter import OpenAIChatAdapter

        return OpenAIChatAdapter(
            api_key=self.settings.llm_api_key,
            model=self.settings.llm_model,
            base_url=self.settings.llm_base_url or None,
        )

    def _build_work_queue(self) -> WorkQueuePort:
        backend = self.settings.workqueue_backend
        if backend == "memory":
            from study_qa.infrastructure.queues.in_memory_queue import InMemoryWorkQueue

            return InMemoryWorkQueue()
        if backend == "redis":
            from study_qa.infrastructure.queues.redis_streams_queue import (
                RedisConfig,
                RedisStreamsWorkQueue,
            )

            return RedisStreamsWorkQueue(RedisConfig(url=self.settings.redis_url))
        raise ValueError(f"Unknown WORKQUEUE_BACKEND '{backend}'")

    def _build_telemetry(self) -> TelemetryPort:
        if not self.settings.telemetry_enabled:
            return NullTelemetry()

        from study_qa.infrastructure.telemetry.otel_adapter import (
            OpenTelemetryAdapter,
            OtelConfig,
        )

        cfg = OtelConfig(
            service_name="study-qa",
            otlp_endpoint=self.settings.otlp_endpoint or None,
            environment=self.settings.telemetry_environment,
        )
        return OpenTelemetryAdapter(cfg)


def build_container(settings: AppSettings | None = None) -> Container:
    """Build dependency injection container with settings.

    Example:
        container = build_container()
        session = container.new_session()
        async for event in session.run(question): ...
    """
    return Container(settings)
