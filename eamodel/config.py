"""
Engine configuration loaded from the environment (and a .env file when present).
"""
import logging
import os
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator


def _env_flag(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}


class EngineSettings(BaseModel):
    """Settings for the store and the engine's read operations."""
    database_url: str = "sqlite:///eamodel.db"
    sql_echo: bool = False
    log_level: str = "INFO"
    default_page_size: int = Field(default=50, ge=1)
    max_page_size: int = Field(default=100, ge=1)

    @model_validator(mode="after")
    def check_page_sizes(self) -> "EngineSettings":
        if self.default_page_size > self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) exceeds max_page_size ({self.max_page_size})"
            )
        return self

    @classmethod
    def from_env(cls, dotenv_path: Optional[str] = None) -> "EngineSettings":
        """Build settings from EAMODEL_* environment variables."""
        load_dotenv(dotenv_path)
        return cls(
            database_url=os.getenv("EAMODEL_DATABASE_URL", "sqlite:///eamodel.db"),
            sql_echo=_env_flag(os.getenv("EAMODEL_SQL_ECHO")),
            log_level=os.getenv("EAMODEL_LOG_LEVEL", "INFO").upper(),
            default_page_size=int(os.getenv("EAMODEL_DEFAULT_PAGE_SIZE", "50")),
            max_page_size=int(os.getenv("EAMODEL_MAX_PAGE_SIZE", "100")),
        )


def configure_logging(level: Union[int, str] = "INFO") -> None:
    """Attach a stream handler to the eamodel component loggers."""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.setLevel(level)
        if not any(isinstance(h, logging.StreamHandler) for h in logger.handlers):
            logger.addHandler(handler)


# Names of the per-component loggers
LOGGER_NAMES = (
    "MetaModelEngine",
    "MetaModelStore",
    "DuplicateGuard",
    "RelationshipMatrix",
    "SoftDeleteManager",
    "AuditTrail",
    "BulkOperations",
    "RuleChecker",
)
