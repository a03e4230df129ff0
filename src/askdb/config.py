"""
askdb/config.py

Central configuration loader for askdb.

What it does:
- Loads environment variables from .env (via python-dotenv)
- Builds DB_URL from DB_* fields if DB_URL is not provided
- Resolves named connections (the policy's `connection` option)
- Configures stdlib logging once for the host app

Secrets (OpenAI key, DB password) stay in the environment, never in the policy YAML.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from urllib.parse import quote_plus

from dotenv import load_dotenv


@dataclass(frozen=True)
class Settings:
    """Runtime settings shared by the Streamlit app, tests and scripts."""
    openai_api_key: str
    llm_model: str
    policy_path: str
    db_url: str
    llm_timeout: float = 30.0
    log_level: str = "INFO"


def _build_db_url_from_parts() -> str:
    """
    Build a SQLAlchemy DB URL from DB_* environment variables.

    Supported:
      - sqlite (DB_NAME is file path)
      - postgresql+psycopg2 / mysql+pymysql (host/port/user/password/name required)
    """
    dialect = (os.getenv("DB_DIALECT") or "sqlite").strip()

    if dialect == "sqlite":
        db_name = (os.getenv("DB_NAME") or "askdb.sqlite3").strip()
        if db_name.startswith("sqlite:"):
            return db_name
        return f"sqlite:///{db_name}"

    parts = {
        key: (os.getenv(key) or "").strip()
        for key in ("DB_HOST", "DB_PORT", "DB_NAME", "DB_USER", "DB_PASSWORD")
    }
    missing = [k for k, v in parts.items() if not v]
    if missing:
        raise ValueError(
            f"Missing DB settings for dialect '{dialect}': {missing}. "
            f"Either set DB_URL directly or fill DB_* variables."
        )

    user_enc = quote_plus(parts["DB_USER"])
    pwd_enc = quote_plus(parts["DB_PASSWORD"])
    return f"{dialect}://{user_enc}:{pwd_enc}@{parts['DB_HOST']}:{parts['DB_PORT']}/{parts['DB_NAME']}"


def get_settings() -> Settings:
    """
    Load .env + environment variables and return a Settings object.

    Precedence:
      1) Environment variables from OS
      2) Values from .env loaded by python-dotenv
    """
    load_dotenv()

    openai_api_key = (os.getenv("OPENAI_API_KEY") or "").strip()
    if not openai_api_key:
        raise ValueError("OPENAI_API_KEY is required (set it in .env or environment).")

    db_url = (os.getenv("DB_URL") or "").strip() or _build_db_url_from_parts()

    return Settings(
        openai_api_key=openai_api_key,
        llm_model=(os.getenv("LLM_MODEL") or "gpt-4o-mini").strip(),
        policy_path=(os.getenv("POLICY_PATH") or "policies/default_policy.yaml").strip(),
        db_url=db_url,
        llm_timeout=float(os.getenv("LLM_TIMEOUT") or 30),
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    )


def resolve_db_url(settings: Settings, connection: str = "default") -> str:
    """
    Pick the DB URL for a named connection.

    "default" is Settings.db_url. Any other name `reporting` is read from
    DB_URL_REPORTING so several stores can be targeted from one .env.
    """
    if not connection or connection == "default":
        return settings.db_url

    env_key = f"DB_URL_{connection.upper()}"
    url = (os.getenv(env_key) or "").strip()
    if not url:
        raise ValueError(f"Connection '{connection}' is not configured (set {env_key}).")
    return url


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging for the host app. Safe to call more than once."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # LLM client libraries are chatty at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("openai").setLevel(logging.WARNING)
