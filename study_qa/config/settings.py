"""Application settings with environment-driven configuration.

This is the ONLY place where environment variables are read. All other
layers receive settings via dependency injection.
"""

import os
from dataclasses import dataclass, field


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


def _env_optional_float(name: str, default: str) -> float | None:
    raw = os.getenv(name, default)
    return None if raw.lower() in {"", "none", "0"} else float(raw)


@dataclass(frozen=True)
class AppSettings:
    """Application settings loaded from environment variables.

    Backend switches:
    - vector_backend:    "qdrant" | "memory"
    - embedding_backend: "sentence_transformers" | "openai"
    - workqueue_backend: "redis" | "memory"
    """

    # ===== Vector Store Configuration =====
    vector_backend: str = field(
        default_factory=lambda: os.getenv("VECTOR_BACKEND", "qdrant").lower()
    )
    qdrant_url: str = field(
        default_factory=lambda: os.getenv("QDRANT_URL", "http://localhost:6333")
    )
    qdrant_api_key: str = field(default_factory=lambda: os.getenv("QDRANT_API_KEY", ""))
    qdrant_prefer_grpc: bool = field(default_factory=lambda: _env_bool("QDRANT_PREFER_GRPC", "false"))
    qdrant_timeout_s: int = field(default_factory=lambda: int(os.getenv("QDRANT_TIMEOUT_S", "30")))
    collection: str = field(
        default_factory=lambda: os.getenv("VECTOR_COLLECTION", "study_chunks")
    )

    # ===== Embedding Configuration =====
    embedding_backend: str = field(
        default_factory=lambda: os.getenv("EMBEDDING_BACKEND", "sentence_transformers").lower()
    )
    embedding_model: str = field(
        default_factory=lambda: os.getenv(
            "EMBEDDING_MODEL", "intfloat/multilingual-e5-large-instruct"
        )
    )
    embedding_device: str = field(default_factory=lambda: os.getenv("EMBEDDING_DEVICE", "cpu"))
    # Supported: "cpu" | "cuda" | "mps"
    embedding_batch_size: int = field(
        default_factory=lambda: int(os.getenv("EMBEDDING_BATCH_SIZE", "64"))
    )

    # ===== LLM Configuration =====
    llm_base_url: str = field(default_factory=lambda: os.getenv("LLM_BASE_URL", ""))
    # Empty = api.openai.com; set to e.g. "http://localhost:8000/v1" for vLLM
    llm_api_key: str = field(default_factory=lambda: os.getenv("LLM_API_KEY", "EMPTY"))
    llm_model: str = field(default_factory=lambda: os.getenv("LLM_MODEL", "gpt-4o-mini"))
    classifier_temperature: float = field(
        default_factory=lambda: float(os.getenv("CLASSIFIER_TEMPERATURE", "0.1"))
    )
    answer_temperature: float = field(
        default_factory=lambda: float(os.getenv("ANSWER_TEMPERATURE", "0.0"))
    )
    answer_max_tokens: int = field(
        default_factory=lambda: int(os.getenv("ANSWER_MAX_TOKENS", "512"))
    )
    summary_max_tokens: int = field(
        default_factory=lambda: int(os.getenv("SUMMARY_MAX_TOKENS", "100"))
    )

    # ===== Pipeline Configuration =====
    retrieval_top_k: int = field(default_factory=lambda: int(os.getenv("RETRIEVAL_TOP_K", "5")))
    max_context_chars: int = field(
        default_factory=lambda: int(os.getenv("MAX_CONTEXT_CHARS", "6000"))
    )
    chunk_size: int = field(default_factory=lambda: int(os.getenv("CHUNK_SIZE", "1000")))
    chunk_overlap: int = field(default_factory=lambda: int(os.getenv("CHUNK_OVERLAP", "200")))

    # ===== Timeouts (seconds; "none" disables) =====
    classifier_timeout_s: float | None = field(
        default_factory=lambda: _env_optional_float("CLASSIFIER_TIMEOUT_S", "15")
    )
    retrieval_timeout_s: float | None = field(
        default_factory=lambda: _env_optional_float("RETRIEVAL_TIMEOUT_S", "10")
    )
    generation_timeout_s: float | None = field(
        default_factory=lambda: _env_optional_float("GENERATION_TIMEOUT_S", "120")
    )
    generation_idle_timeout_s: float | None = field(
        default_factory=lambda: _env_optional_float("GENERATION_IDLE_TIMEOUT_S", "30")
    )
    summary_timeout_s: float | None = field(
        default_factory=lambda: _env_optional_float("SUMMARY_TIMEOUT_S", "30")
    )

    # ===== Work Queue Configuration =====
    workqueue_backend: str = field(
        default_factory=lambda: os.getenv("WORKQUEUE_BACKEND", "memory").lower()
    )
    redis_url: str = field(
        default_factory=lambda: os.getenv("REDIS_URL", "redis://localhost:6379/0")
    )
    vectorize_topic: str = field(
        default_factory=lambda: os.getenv("VECTORIZE_STREAM", "vectorize")
    )
    vectorize_max_attempts: int = field(
        default_factory=lambda: int(os.getenv("VECTORIZE_MAX_ATTEMPTS", "3"))
    )
    vectorize_backoff_s: float = field(
        default_factory=lambda: float(os.getenv("VECTORIZE_BACKOFF_S", "2.0"))
    )
    run_worker: bool = field(default_factory=lambda: _env_bool("RUN_WORKER", "true"))
    # Run the vectorization worker inside the API process

    # ===== Telemetry Configuration =====
    telemetry_enabled: bool = field(default_factory=lambda: _env_bool("TELEMETRY_ENABLED", "true"))
    otlp_endpoint: str = field(default_factory=lambda: os.getenv("OTLP_ENDPOINT", ""))
    # Empty string = no OTLP export
    telemetry_environment: str = field(
        default_factory=lambda: os.getenv("TELEMETRY_ENVIRONMENT", "production")
    )

    # ===== Logging =====
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO").upper())
