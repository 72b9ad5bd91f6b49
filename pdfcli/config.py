"""pdfcli/config.py

Environment-driven configuration.

Every setting can be supplied as ``PDFCLI_<NAME>`` in the environment or a
``.env`` file. Per-tool ``*_path`` overrides force an explicit executable and
bypass ``PATH`` discovery, which is what CI and sandboxed runs rely on.
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Explicit executable paths, one per logical tool
    qpdf_path: str | None = None
    pdfinfo_path: str | None = None
    pdftotext_path: str | None = None
    pdftoppm_path: str | None = None
    ghostscript_path: str | None = None

    # Execution limits (seconds / bytes)
    timeout_seconds: float = Field(default=120.0, gt=0)
    probe_timeout_seconds: float = Field(default=10.0, gt=0)
    kill_grace_seconds: float = Field(default=5.0, ge=0)
    capture_limit_bytes: int = Field(default=4 * 1024 * 1024, gt=0)
    diagnostic_excerpt_chars: int = Field(default=800, gt=0)

    # Batch processing
    max_workers: int = Field(default=4, ge=1)

    # Retry the next candidate tool after a tool-reported failure, not only
    # after the first one is missing
    fallback_on_tool_failure: bool = False

    model_config = SettingsConfigDict(
        env_prefix="PDFCLI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    def tool_override(self, name: str) -> str | None:
        """Return the explicit executable configured for logical tool *name*."""
        value = getattr(self, f"{name}_path", None)
        return value or None


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
