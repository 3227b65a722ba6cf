from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "FTC Assistant"
    environment: str = "development"
    host: str = "127.0.0.1"
    port: int = 8000
    log_level: str = "INFO"
    cors_allow_origins: list[str] = ["*"]

    # ── Generation backend slots (planner + 2x2 code/difficulty table) ──
    planner_model: str = Field("gemini-2.0-flash-lite", validation_alias="GEMINI_PLANNER_MODEL")
    easy_noncode_model: str = Field("gemini-2.0-flash", validation_alias="GEMINI_EASY_NONCODE_MODEL")
    easy_code_model: str = Field("gemini-2.0-flash", validation_alias="GEMINI_EASY_CODE_MODEL")
    hard_noncode_model: str = Field("gemini-2.5-pro", validation_alias="GEMINI_HARD_NONCODE_MODEL")
    hard_code_model: str = Field("gemini-2.5-pro", validation_alias="GEMINI_HARD_CODE_MODEL")

    # Generation budgets
    planner_max_output_tokens: int = 500
    planner_temperature: float = 0.1
    final_model_max_output_tokens: int = 3072
    final_model_retry_min_output_tokens: int = 4096  # floor for the truncation retry
    final_model_temperature: float = 0.2
    repair_max_output_tokens: int = 800
    generation_timeout_seconds: float = 120.0

    # ── Generation credentials ──────────────────────────────────────
    gemini_api_key: str | None = Field(
        None, validation_alias=AliasChoices("GEMINI_API_KEY", "GOOGLE_API_KEY", "VERTEXAI_KEY")
    )
    vertex_access_token: str | None = None
    vertex_project_id: str | None = None
    vertex_location: str = "us-central1"
    # Base64-encoded service-account JSON
    google_credentials: str | None = Field(None, validation_alias="GOOGLECREDENTIALS")
    token_refresh_margin_seconds: int = 60
    token_default_lifetime_seconds: int = 45 * 60

    # ── Embeddings ──────────────────────────────────────────────────
    embedding_provider: str = "openai"  # openai | sentence_transformers
    openai_api_key: str | None = None
    openai_embedding_model: str = "text-embedding-3-small"
    # Explicit expectation of the provider's native length (None = trust provider)
    openai_embedding_dimensions: int | None = None
    # Fixed dimensionality of the vector store column
    openai_embedding_target_dimensions: int = 384
    local_embedding_model: str = "all-MiniLM-L6-v2"

    # ── Retrieval ───────────────────────────────────────────────────
    rag_match_count: int = 6
    rag_domain_prefix: str = "FTC DECODE season question:"

    # ── Vector store ────────────────────────────────────────────────
    vector_store_backend: str = "chroma"  # chroma | supabase
    chromadb_persist_directory: str | None = None  # Auto-detected if None
    chromadb_collection: str = "documents"
    supabase_url: str | None = None
    supabase_service_role_key: str | None = None
    supabase_match_function: str = "match_documents"
    supabase_table: str = "documents"

    # ── Ingestion ───────────────────────────────────────────────────
    rag_chunk_size: int = 1200
    rag_chunk_overlap: int = 200
    rag_embed_batch_size: int = 20
    rag_embed_max_chars: int = 24000
    rag_require_source_url: bool = True
    rag_data_dir: str = "data"

    # ── Streaming ───────────────────────────────────────────────────
    stream_segment_chars: int = 120
    stream_pacing_seconds: float = 0.008

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",  # Ignore extra environment variables that aren't in the Settings class
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _check_chunk_window(self) -> "Settings":
        if not 0 < self.rag_chunk_overlap < self.rag_chunk_size:
            raise ValueError(
                "rag_chunk_overlap must satisfy 0 < overlap < rag_chunk_size "
                f"(got overlap={self.rag_chunk_overlap}, size={self.rag_chunk_size})"
            )
        return self


settings = Settings()
