"""
Shared environment-driven database configuration helpers.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_ENV_FILENAMES = (".env", ".env.local")
_CLOUD_LIKE_ENVIRONMENTS = frozenset({"prod", "production", "staging", "cloud"})
_URL_CREDENTIALS_RE = re.compile(r"//[^:/@]+:[^@]+@")


def load_env_files(project_root: Path | None = None) -> None:
    """
    Load simple KEY=VALUE pairs from `.env` and `.env.local` (if present).
    Existing process environment variables are not overwritten.
    """

    root = project_root or _PROJECT_ROOT
    for filename in _ENV_FILENAMES:
        env_path = root / filename
        if not env_path.is_file():
            continue

        for raw_line in env_path.read_text(encoding="utf-8").splitlines():
            line = raw_line.strip()
            if line.startswith("export "):
                line = line[len("export "):].strip()
            if not line or line.startswith("#") or "=" not in line:
                continue

            key, value = line.split("=", 1)
            key = key.strip()
            value = value.strip().strip('"').strip("'")
            if key and key not in os.environ:
                os.environ[key] = value


def normalize_postgres_url(url: str) -> str:
    """
    Normalize postgres URLs to SQLAlchemy's psycopg driver form.
    """

    url = url.strip()
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+psycopg://", 1)
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


def redact_url(url: str) -> str:
    """
    Mask user:password credentials in a URL so it can be logged.
    """

    return _URL_CREDENTIALS_RE.sub("//***:***@", url)


def resolve_database_url() -> str:
    """
    Resolve database URL using environment variables and optional .env files.

    Priority:
    1) DATABASE_URL
    2) CLOUD_DATABASE_URL when ENVIRONMENT is cloud-like
    3) LOCAL_DATABASE_URL
    """

    load_env_files()

    direct_url = os.getenv("DATABASE_URL", "").strip()
    if direct_url:
        return normalize_postgres_url(direct_url)

    environment = os.getenv("ENVIRONMENT", "local").strip().lower()
    cloud_url = os.getenv("CLOUD_DATABASE_URL", "").strip()
    if environment in _CLOUD_LIKE_ENVIRONMENTS and cloud_url:
        return normalize_postgres_url(cloud_url)

    local_url = os.getenv("LOCAL_DATABASE_URL", "").strip()
    if local_url:
        return normalize_postgres_url(local_url)

    raise RuntimeError(
        "No database URL configured. Set DATABASE_URL, or configure "
        "LOCAL_DATABASE_URL / CLOUD_DATABASE_URL."
    )
