from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_env: str = "dev"
    log_level: str = "INFO"

    storage_backend: str = "postgres"

    db_host: str = "host.docker.internal"
    db_port: int = 5432
    db_database: str = "docproc"
    db_username: str = "docproc"
    db_password: str = "secret"
    db_pool_max_size: int = 10

    max_workers: int = 4
    job_poll_interval_seconds: int = 5
    default_max_retries: int = 3
    retry_base_delay_seconds: float = 5.0
    retry_permanent_errors: bool = True
    stuck_job_ceiling_seconds: int = 900

    default_provider: str = "openai"
    fallback_model: str = "gpt-3.5-turbo"
    confidence_threshold: float = 0.7
    knowledge_snippet_chars: int = 500
    knowledge_embeddings_enabled: bool = False
    embedding_provider: str = "openai"

    document_fetch_timeout_seconds: int = 30
    files_root: str = "/app/files"
    pdf_engine: str = "pdfplumber"
    webhook_timeout_seconds: int = 10

    openai_api_key: str = ""
    openai_base_url: str | None = None
    openai_timeout_seconds: int = 60

    anthropic_api_key: str = ""
    anthropic_base_url: str | None = None
    anthropic_timeout_seconds: int = 120

    google_api_key: str = ""
    google_base_url: str | None = None
    google_timeout_seconds: int = 120

    perplexity_api_key: str = ""
    perplexity_base_url: str | None = None
    perplexity_timeout_seconds: int = 60

    deepseek_api_key: str = ""
    deepseek_base_url: str | None = None
    deepseek_timeout_seconds: int = 60

    cohere_api_key: str = ""
    cohere_base_url: str | None = None
    cohere_timeout_seconds: int = 60

    grok_api_key: str = ""
    grok_base_url: str | None = None
    grok_timeout_seconds: int = 60
