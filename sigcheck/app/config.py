"""
Centralized configuration management for the signature check service.

Pydantic v2 settings management: strict validation, fail-fast on invalid
configuration, immutable once loaded.
"""

from __future__ import annotations

import logging
import math
from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# -------------------------------------------------------------------------
# Reusable Type Aliases
# -------------------------------------------------------------------------

SizeLimitMB = Annotated[
    int,
    Field(
        ge=1,
        le=100,
        description="OOM protection limit in megabytes",
    ),
]


ENVELOPE_OVERHEAD_BYTES = 64 * 1024


# -------------------------------------------------------------------------
# Settings Model
# -------------------------------------------------------------------------

class Settings(BaseSettings):
    """
    Application settings parsed from the environment (prefix SIGCHECK_).

    Configuration must not influence correlation outcomes except through
    the explicit partial-tolerance switch below.
    """

    # ---------------------------------------------------------------------
    # Operational Boundaries
    # ---------------------------------------------------------------------

    max_document_size_mb: SizeLimitMB = 25

    max_part_size_mb: SizeLimitMB = 25

    # ---------------------------------------------------------------------
    # Failure policy
    # ---------------------------------------------------------------------

    tolerate_malformed_signature_parts: Annotated[
        bool,
        Field(
            default=False,
            description=(
                "When true, a signature part that fails to parse contributes "
                "zero signer identities instead of failing the whole request."
            ),
        ),
    ]

    # ---------------------------------------------------------------------
    # Logging
    # ---------------------------------------------------------------------

    log_level: Annotated[
        str,
        Field(
            default="INFO",
            description="Root log level for the sigcheck loggers",
        ),
    ]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.strip().upper()
        if level not in logging.getLevelNamesMapping():
            raise ValueError(f"Unsupported log level '{v}'")
        return level

    @property
    def max_document_size_bytes(self) -> int:
        return self.max_document_size_mb * 1024 * 1024

    @property
    def max_request_body_bytes(self) -> int:
        """
        Largest JSON body read before parsing. Covers the base64 form of the
        largest document with 5% slack for line breaks, and the envelope.
        """
        encoded = math.ceil(self.max_document_size_bytes / 3) * 4
        return encoded + encoded // 20 + ENVELOPE_OVERHEAD_BYTES

    @property
    def max_part_size_bytes(self) -> int:
        return self.max_part_size_mb * 1024 * 1024

    model_config = SettingsConfigDict(
        env_prefix="SIGCHECK_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        frozen=True,
    )


# -------------------------------------------------------------------------
# Settings Dependency Provider
# -------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Cached settings provider (singleton within process)."""
    return Settings()
