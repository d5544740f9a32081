"""
Configuration — typed, validated settings loaded from environment/.env.

Uses pydantic-settings to:
  - Load from environment variables (12-factor app)
  - Fall back to .env file
  - Validate types and constraints at startup
  - Keep secrets out of source control and out of logs (SecretStr)

Only AppSettings is a BaseSettings instance. Sub-settings are plain BaseModel
classes populated via env_nested_delimiter="__", so DATABASE__HOST maps to
database.host and SECURITY__ENCRYPTION__CIPHER to security.encryption.cipher.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from smime_store.domain.models import SecurityOptions, SymmetricCipher

# Resolve the .env file relative to the project root (two levels above this file).
_ENV_FILE = Path(__file__).parent.parent.parent / ".env"


class DatabaseSettings(BaseModel):
    """
    PostgreSQL connection configuration.

    Accepts either a full connection string via DATABASE__DSN or individual
    components (host, port, name, username, password). The DSN takes priority
    when both are provided.
    """

    dsn: SecretStr | None = Field(
        default=None,
        description="Full PostgreSQL connection string (overrides individual fields)",
    )
    host: str | None = Field(default=None, description="PostgreSQL host")
    port: int = Field(default=5432, ge=1, le=65535, description="PostgreSQL port")
    name: str | None = Field(default=None, description="PostgreSQL database name")
    username: str | None = Field(default=None, description="PostgreSQL username")
    password: SecretStr | None = Field(default=None, description="PostgreSQL password")

    @model_validator(mode="after")
    def resolve_dsn(self) -> DatabaseSettings:
        """Build `dsn` from the components when it was not given directly."""
        if self.dsn is not None:
            return self
        missing = [f for f, v in [
            ("DATABASE__HOST", self.host),
            ("DATABASE__NAME", self.name),
            ("DATABASE__USERNAME", self.username),
            ("DATABASE__PASSWORD", self.password),
        ] if not v]
        if missing:
            raise ValueError("Set DATABASE__DSN or provide all of: " + ", ".join(missing))
        dsn_value = (
            f"postgresql://{self.username}:{self.password.get_secret_value()}"  # type: ignore[union-attr]
            f"@{self.host}:{self.port}/{self.name}"
        )
        object.__setattr__(self, "dsn", SecretStr(dsn_value))
        return self

    def get_dsn(self) -> str:
        assert self.dsn is not None  # guaranteed by resolve_dsn validator
        return self.dsn.get_secret_value()


class SignSettings(BaseModel):
    allow_expired: bool = Field(default=False, description="Sign with an expired certificate")


class EncryptionSettings(BaseModel):
    allow_expired: bool = Field(
        default=False, description="Encrypt to expired recipient certificates"
    )
    cipher: SymmetricCipher = Field(
        default=SymmetricCipher.AES_128_CBC,
        description="Content-encryption cipher: aes-128-cbc or aes-256-cbc",
    )


class SecuritySettings(BaseModel):
    sign: SignSettings = Field(default_factory=SignSettings)
    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings)


class AppSettings(BaseSettings):
    """
    Root application settings.

    Load order (highest priority first):
      1. Environment variables
      2. .env file
      3. Default values
    """

    model_config = SettingsConfigDict(
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
    )

    database: DatabaseSettings
    security: SecuritySettings = Field(default_factory=SecuritySettings)

    scan_batch_size: int = Field(default=100, ge=1)
    log_level: str = Field(default="INFO")

    def security_options(self) -> SecurityOptions:
        return SecurityOptions(
            allow_expired_for_signing=self.security.sign.allow_expired,
            allow_expired_for_encryption=self.security.encryption.allow_expired,
            cipher=self.security.encryption.cipher,
        )
