"""Configuration management for the Assistant Engine."""

from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load environment variables from .env file (only if accessible)
try:
    load_dotenv()
except (PermissionError, OSError):
    # In sandboxed environments, .env might not be accessible
    pass


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=True,
        extra="ignore",
    )

    # Supabase configuration (required)
    SUPABASE_URL: str = Field(..., description="Supabase project URL")
    SUPABASE_SERVICE_ROLE_KEY: str = Field(..., description="Supabase service role key")

    # OpenAI configuration (optional: chat returns 503 without it)
    OPENAI_API_KEY: str | None = Field(default=None, description="OpenAI API key")

    # Environment
    ENGINE_ENV: str = Field(default="dev", description="Environment: dev, staging, prod")

    # Embedding configuration
    EMBEDDING_MODEL: str = Field(
        default="text-embedding-3-small", description="OpenAI embedding model"
    )
    EMBEDDING_DIM: int = Field(default=1536, description="Embedding vector dimension")

    # Model tiers used by the router
    CHAT_MODEL_LARGE: str = Field(default="gpt-4o", description="Model for heavy or long requests")
    CHAT_BUDGET_LARGE: int = Field(default=3000, description="Token budget for the large tier")
    CHAT_MODEL_MEDIUM: str = Field(default="gpt-4o", description="Model for medium requests")
    CHAT_BUDGET_MEDIUM: int = Field(default=2000, description="Token budget for the medium tier")
    CHAT_MODEL_SMALL: str = Field(default="gpt-4o-mini", description="Economical model")
    CHAT_BUDGET_SMALL: int = Field(default=800, description="Token budget for the small tier")
    CHAT_TEMPERATURE: float = Field(default=0.2, description="Sampling temperature for chat")
    CHAT_HISTORY_TURNS: int = Field(default=6, description="Client history turns sent to the model")

    # Retrieval
    RETRIEVAL_TOP_K: int = Field(default=5, description="Chunks retrieved per request")
    RETRIEVAL_TOP_K_WITH_IMAGES: int = Field(
        default=3, description="Chunks retrieved when images are attached"
    )

    # Per-collaborator timeouts (seconds)
    RETRIEVAL_TIMEOUT: float = Field(default=4.0, description="Embedding + vector search timeout")
    CONTEXT_TIMEOUT: float = Field(default=2.0, description="Conversation context fetch timeout")
    PREFERENCES_TIMEOUT: float = Field(default=2.0, description="Preference/defaults fetch timeout")
    PERSISTENCE_TIMEOUT: float = Field(default=5.0, description="Per-write persistence timeout")

    # Sessions
    SESSION_IDLE_MINUTES: int = Field(
        default=60, description="Minutes of inactivity after which a new session starts"
    )

    # Rate limiting
    CHAT_RATE_LIMIT_PER_MINUTE: int = Field(default=10, description="Sustained chat requests/min")
    CHAT_RATE_LIMIT_BURST: int = Field(default=15, description="Chat burst size")


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings instance

    Raises:
        ValidationError: If required environment variables are missing
    """
    return Settings()
