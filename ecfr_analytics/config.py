"""
Service configuration.

Settings come from environment variables, optionally populated from a .env
file in the working directory.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from dotenv import load_dotenv

from .exceptions import ConfigurationError
from .models import TechnicalVocabulary

load_dotenv()

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        value = int(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from e
    if value <= 0:
        raise ConfigurationError(f"{name} must be positive, got {value}")
    return value


@dataclass(frozen=True)
class Settings:
    """Runtime settings for the API process and its clients."""

    neo4j_uri: str = "bolt://localhost:7687"
    neo4j_user: str = "neo4j"
    neo4j_password: str = "password"

    # Maximum-score memo cells
    cache_ttl_seconds: int = 3600

    # Sampling bounds
    complexity_sample_size: int = 100
    top_agencies_limit: int = 10
    top_agencies_sample_size: int = 25
    aggregated_sample_size: int = 20

    vocabulary: TechnicalVocabulary = TechnicalVocabulary.OBLIGATION
    log_level: str = "INFO"
    api_base_url: str = "http://localhost:8000"

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the environment, falling back to defaults."""
        vocabulary_name = os.getenv("TECHNICAL_VOCABULARY", TechnicalVocabulary.OBLIGATION.value)
        try:
            vocabulary = TechnicalVocabulary(vocabulary_name.strip().lower())
        except ValueError as e:
            raise ConfigurationError(
                f"TECHNICAL_VOCABULARY must be one of "
                f"{[v.value for v in TechnicalVocabulary]}, got {vocabulary_name!r}"
            ) from e

        return cls(
            neo4j_uri=os.getenv("NEO4J_URI", cls.neo4j_uri),
            neo4j_user=os.getenv("NEO4J_USER", cls.neo4j_user),
            neo4j_password=os.getenv("NEO4J_PASSWORD", cls.neo4j_password),
            cache_ttl_seconds=_int_env("MAX_SCORE_CACHE_TTL", cls.cache_ttl_seconds),
            complexity_sample_size=_int_env("COMPLEXITY_SAMPLE_SIZE", cls.complexity_sample_size),
            top_agencies_limit=_int_env("TOP_AGENCIES_LIMIT", cls.top_agencies_limit),
            top_agencies_sample_size=_int_env("TOP_AGENCIES_SAMPLE_SIZE", cls.top_agencies_sample_size),
            aggregated_sample_size=_int_env("AGGREGATED_SAMPLE_SIZE", cls.aggregated_sample_size),
            vocabulary=vocabulary,
            log_level=os.getenv("LOG_LEVEL", cls.log_level).upper(),
            api_base_url=os.getenv("API_BASE_URL", cls.api_base_url).rstrip("/"),
        )


def configure_logging(level: str = "INFO") -> None:
    """Install a single root handler; calling again only adjusts the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    root.setLevel(level)
