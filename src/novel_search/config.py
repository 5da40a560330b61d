from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables or .env file."""

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}

    # Storage
    vector_db_path: str = "vector_index.db"
    source_db_path: str | None = None
    chapters_dir: str | None = None

    # Embeddings
    embedding_backend: Literal["local", "openai", "hashing"] = "local"
    local_embedding_model: str = "intfloat/multilingual-e5-base"
    embedding_dim: int = Field(default=768, ge=1)
    embedding_batch_size: int = Field(default=32, ge=1)

    # OpenAI
    openai_api_key: str | None = None
    openai_embedding_model: str = "text-embedding-3-small"

    # Search
    vector_cache_size: int = Field(default=1000, ge=1)
    default_search_limit: int = Field(default=10, ge=1)
    default_min_similarity: float = Field(default=0.5, ge=-1.0, le=1.0)

    # Indexing
    knowledge_batch_size: int = Field(default=10, ge=1)
    chapter_batch_size: int = Field(default=5, ge=1)

    # Logging
    log_level: str = "INFO"
