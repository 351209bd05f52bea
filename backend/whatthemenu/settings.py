from __future__ import annotations

import os
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[2]
ENV_FILE = REPO_ROOT / ".env"

SUPPORTED_LANGUAGES: tuple[str, ...] = ("en", "es", "zh", "fr")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE), env_file_encoding="utf-8", extra="ignore"
    )

    DEBUG: bool = False

    # persistence directory (defaults to ~/.whatthemenu-data)
    DATA_DIR: Path | None = None
    DATABASE_URL: str | None = None

    # Exact origins (comma-separated). Empty plus no patterns disables the origin check.
    CORS_ALLOW_ORIGINS: str = ""
    # Shell-style wildcards for preview deployments, e.g.
    # "https://deploy-preview-*--whatthemenu.netlify.app"
    CORS_ALLOW_ORIGIN_PATTERNS: str = ""

    # Rate limiting (fixed window per client)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_REQUESTS: int = 30
    RATE_LIMIT_WINDOW_SECONDS: int = 300

    # Only trust X-Forwarded-For headers from these proxies (comma-separated IPs/CIDRs)
    # Set to "*" to trust all (INSECURE - only for development behind trusted reverse proxy)
    TRUSTED_PROXIES: str = ""

    # Matching
    MATCH_THRESHOLD: float = 0.80
    RESTAURANT_BONUS: float = 0.10
    WORD_MATCH_THRESHOLD: float = 0.7
    SHORT_STRING_LENGTH: int = 3
    SHORT_STRING_MIN_SIMILARITY: float = 0.8
    OVERLAP_THRESHOLD: float = 0.6
    CACHE_NON_FOOD_RESULTS: bool = False

    # Resolution
    EXPLAIN_DEADLINE_SECONDS: float = 15.0
    CORPUS_WRITE_TIMEOUT_SECONDS: float = 5.0
    FREE_EXPLANATION_LIMIT: int = 5

    # Generator
    OPENAI_API_KEY: str | None = None
    OPENAI_API_BASE: str = "https://api.openai.com/v1"
    EXPLAIN_MODEL: str = "gpt-4o-mini"
    EXPLAIN_MAX_TOKENS: int = 400
    EXPLAIN_TEMPERATURE: float = 0.2
    OPENAI_TIMEOUT_SECONDS: float = 15.0
    OPENAI_CONNECT_TIMEOUT_SECONDS: float = 5.0

    # Auth0 integration
    AUTH0_DOMAIN: str | None = None
    AUTH0_AUDIENCE: str | None = None
    AUTH0_BYPASS: bool = False  # require explicit opt-in for bypass

    # Observability
    SENTRY_DSN: str | None = None
    SENTRY_ENVIRONMENT: str = "development"
    SENTRY_RELEASE: str | None = None
    SENTRY_TRACES_SAMPLE_RATE: float = 0.2

    # Redis (optional - shared rate-limit windows across instances)
    REDIS_URL: str | None = None  # e.g., "redis://localhost:6379/0"
    REDIS_ENABLED: bool = False

    @property
    def allow_origins(self) -> list[str]:
        return _split_csv(self.CORS_ALLOW_ORIGINS)

    @property
    def allow_origin_patterns(self) -> list[str]:
        return _split_csv(self.CORS_ALLOW_ORIGIN_PATTERNS)

    @property
    def data_dir(self) -> Path:
        # Blank DATA_DIR values count as unset; pydantic would otherwise read them as Path('.')
        def _materialize(path: Path) -> Path:
            path.mkdir(parents=True, exist_ok=True)
            return path

        raw_env = os.getenv("DATA_DIR")
        if raw_env is not None:
            trimmed = raw_env.strip()
            if trimmed:
                return _materialize(Path(trimmed).expanduser().resolve())
            return _materialize(Path.home() / ".whatthemenu-data")

        if self.DATA_DIR is not None:
            candidate = Path(self.DATA_DIR).expanduser()
            candidate_str = str(candidate).strip()
            if candidate_str and candidate_str not in {".", "./", ".\\"}:
                return _materialize(candidate.resolve())
        return _materialize(Path.home() / ".whatthemenu-data")

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        default_path = self.data_dir / "whatthemenu.db"
        return f"sqlite:///{default_path}"

    @property
    def async_database_url(self) -> str:
        url = self.database_url
        if url.startswith("sqlite:///"):
            return url.replace("sqlite:///", "sqlite+aiosqlite:///", 1)
        if url.startswith("postgresql://"):
            return url.replace("postgresql://", "postgresql+asyncpg://", 1)
        return url

    @property
    def auth0_issuer(self) -> str | None:
        if not self.AUTH0_DOMAIN:
            return None
        domain = self.AUTH0_DOMAIN.removeprefix("https://").removeprefix("http://")
        return f"https://{domain}/"


def _split_csv(raw: str | None) -> list[str]:
    s = (raw or "").strip()
    if s == "":
        return []
    return [part.strip() for part in s.split(",") if part.strip()]


settings = Settings()
