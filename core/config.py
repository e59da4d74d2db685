"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TokenGate happen here. No module should
call os.getenv() or os.environ.get() directly. Import get_settings() instead,
and pass the values it needs into the component that uses them.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET).

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved. Used for the posture-dependent JWT_SECRET rules.

Security notes:
  [S1] In production posture (ENVIRONMENT=production), a missing JWT_SECRET or
       one equal to DEV_JWT_SECRET is a hard startup failure. Running with the
       published placeholder would let anyone mint valid tokens.

  [S2] JWT_SECRET shorter than 32 chars is rejected in every posture. HS256
       signing relies on key entropy, and a short key weakens it.

  [S3] In production posture, JWT_SECRET must also avoid common words
       (WEAK_SECRET_PATTERNS) and mix at least 3 character classes.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import re
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tokengate.config")

# Placeholder shipped in .env examples. Accepted in development only [S1].
DEV_JWT_SECRET = "development-secret-change-in-production"

DEFAULT_TOKEN_LIFETIME = 7 * 24 * 60 * 60  # 7 days

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'auth' / 'tokengate_auth.db'}"

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-z]*)\s*$")
_DURATION_UNITS = {
    "": 1,
    "s": 1,
    "sec": 1,
    "secs": 1,
    "second": 1,
    "seconds": 1,
    "m": 60,
    "min": 60,
    "mins": 60,
    "minute": 60,
    "minutes": 60,
    "h": 3600,
    "hr": 3600,
    "hrs": 3600,
    "hour": 3600,
    "hours": 3600,
    "d": 86400,
    "day": 86400,
    "days": 86400,
    "w": 604800,
    "week": 604800,
    "weeks": 604800,
}

# Substrings that mark a guessable secret. Checked case-insensitively [S3].
WEAK_SECRET_PATTERNS = (
    "password",
    "secret",
    "changeme",
    "default",
    "123456",
    "development",
    "test",
    "admin",
    "root",
)

_SECRET_CHARACTER_CLASSES = (
    re.compile(r"[A-Z]"),
    re.compile(r"[a-z]"),
    re.compile(r"\d"),
    re.compile(r"[^A-Za-z0-9]"),
)


def parse_duration(value: str | int) -> int:
    """Convert "7d" / "1w" / "2.5h" / "30m" / "45s" / "3600" into whole seconds.

    Bare numbers are seconds. Fractions are truncated to whole seconds.
    Integers pass through unchanged. Raises ValueError on anything else.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        return value
    match = _DURATION_RE.match(str(value).lower())
    if match is None or match.group(2) not in _DURATION_UNITS:
        raise ValueError(f"Invalid duration: {value!r}. Use seconds or a suffix of s, m, h, d or w.")
    amount, unit = match.groups()
    return int(float(amount) * _DURATION_UNITS[unit])


def check_secret_strength(secret: str) -> None:
    """Raise ValueError if secret contains a weak pattern or too few character classes [S3]."""
    lowered = secret.lower()
    for pattern in WEAK_SECRET_PATTERNS:
        if pattern in lowered:
            raise ValueError(f"JWT_SECRET contains weak pattern: {pattern}")
    classes = sum(1 for regex in _SECRET_CHARACTER_CLASSES if regex.search(secret))
    if classes < 3:
        raise ValueError(
            "JWT_SECRET must contain at least 3 of: uppercase letters, lowercase letters, numbers, symbols."
        )


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in development
    and test environments without a real .env file. The model_validator
    enforces production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    environment: str = "development"
    log_level: str = "INFO"
    database_url: str = _DEFAULT_DB_URL

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    jwt_secret: str = DEV_JWT_SECRET
    jwt_expires_in: int = DEFAULT_TOKEN_LIFETIME
    jwt_issuer: str = "tokengate"
    jwt_audience: str = "tokengate-api"

    # ------------------------------------------------------------------
    # Password hashing
    #
    # Raising the cost is compatibility-breaking only for new hashes: existing
    # hashes carry their own cost and keep verifying, and are upgraded on the
    # next successful login.
    # ------------------------------------------------------------------

    bcrypt_rounds: int = Field(default=10, ge=4, le=31)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("environment")
    @classmethod
    def normalize_environment(cls, value: str) -> str:
        return value.strip().lower()

    @field_validator("jwt_expires_in", mode="before")
    @classmethod
    def parse_expires_in(cls, value):
        return parse_duration(value)

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @model_validator(mode="after")
    def validate_secret(self) -> "Settings":
        """Enforce the JWT_SECRET policy [S1][S2][S3].

        Production posture: refuse to start without a real secret, or with
            one that fails check_secret_strength().
        Development posture: an empty secret is replaced by a random one with
            a warning. Tokens will not survive a restart.
        Both: reject secrets shorter than 32 characters.
        """
        if self.jwt_expires_in <= 0:
            raise ValueError("JWT_EXPIRES_IN must be a positive duration.")
        if self.is_production:
            if not self.jwt_secret or self.jwt_secret == DEV_JWT_SECRET:
                raise ValueError(
                    "JWT_SECRET must be set in production. "
                    "Generate one with `python main.py secret` and set it in your environment or .env file."
                )
        elif not self.jwt_secret:
            self.jwt_secret = secrets.token_urlsafe(48)
            logger.warning("Using auto-generated JWT_SECRET. Tokens will not survive a restart.")
        elif self.jwt_secret == DEV_JWT_SECRET:
            logger.warning("Using the development JWT_SECRET placeholder. Do not deploy this configuration.")
        if len(self.jwt_secret) < 32:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if self.is_production:
            check_secret_strength(self.jwt_secret)
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
