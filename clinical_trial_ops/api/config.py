"""
API Configuration
Centralized settings using Pydantic BaseSettings for environment-based configuration
"""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import List, Optional
from functools import lru_cache
import logging

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    app_name: str = "Clinical Trial Operations API"
    app_version: str = "1.0.0"
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Logging level")

    # Server
    host: str = Field(default="127.0.0.1", description="Server host")
    port: int = Field(default=8000, description="Server port")

    # CORS
    cors_allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173,http://127.0.0.1:3000,http://127.0.0.1:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    # Database
    database_url: str = Field(
        default="sqlite:///./clinical_trial_ops.db",
        description="SQLAlchemy database URL"
    )
    database_echo: bool = Field(default=False, description="Echo SQL statements")

    # Seeding
    seed_on_startup: bool = Field(default=False, description="Seed demo and domain data at startup")
    seed_batch_size: int = Field(default=50, description="Rows per committed batch when seeding domain data")

    # Simulation
    dm_bot_random_seed: Optional[int] = Field(
        default=None,
        description="Seed for the data management simulation (reproducible analyses)"
    )
    default_trial_id: int = Field(default=1, description="Trial used by the assistants when none is given")
    assistant_max_messages: int = Field(default=100, description="Messages kept per assistant chat session")
    assistant_max_sessions: int = Field(default=500, description="Chat sessions kept before the oldest is dropped")

    @property
    def cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        return [origin.strip() for origin in self.cors_allowed_origins.split(",") if origin.strip()]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_prefix = ""
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance (singleton pattern)"""
    return Settings()


# Service singletons
_services = {}


def get_service(service_name: str):
    """Get or create a singleton service instance"""
    global _services

    if service_name not in _services:
        if service_name == "dm_bot_service":
            from clinical_trial_ops.api.services.dm_bot_service import DMBotService
            _services[service_name] = DMBotService(seed=get_settings().dm_bot_random_seed)
        elif service_name == "assistant_service":
            from clinical_trial_ops.api.services.assistant_service import AssistantService
            settings = get_settings()
            _services[service_name] = AssistantService(
                default_trial_id=settings.default_trial_id,
                max_messages=settings.assistant_max_messages,
                max_sessions=settings.assistant_max_sessions,
            )
        else:
            raise ValueError(f"Unknown service: {service_name}")

    return _services[service_name]


async def initialize_services():
    """Initialize all services during startup"""
    from clinical_trial_ops.db.session import init_db

    init_db()
    get_service("dm_bot_service")
    get_service("assistant_service")

    settings = get_settings()
    if settings.seed_on_startup:
        from clinical_trial_ops.db.seed import seed_all
        from clinical_trial_ops.db.session import session_scope

        with session_scope() as session:
            seed_all(session, batch_size=settings.seed_batch_size)
    logger.info("Services initialized")


async def cleanup_services():
    """Cleanup services during shutdown"""
    global _services
    _services.clear()
