"""
Cyfer Configuration — environment-driven, validated settings.

Reads settings from environment variables:
    CYFER_VAULT_PATH = <path to the vault file>
    CYFER_MIN_PASSWORD_LENGTH = <integer, default 8>
    CYFER_BUSY_POLICY = reject | queue
    CYFER_ENGINE_URL = <base URL of a remote secrets engine>
    CYFER_BRIDGE_TIMEOUT = <seconds, default 30>
    CYFER_KDF_M_COST / CYFER_KDF_T_COST / CYFER_KDF_P_COST = <Argon2id params>

Security Note:
    No secret material is configured through the environment. The master
    password is only ever supplied interactively.
"""
import os
import logging
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

logger = logging.getLogger("cyfer.session")

DEFAULT_MIN_PASSWORD_LENGTH = 8
DEFAULT_BRIDGE_TIMEOUT = 30.0

# Argon2id defaults (OWASP minimum profile)
DEFAULT_KDF_M_COST = 19456
DEFAULT_KDF_T_COST = 2
DEFAULT_KDF_P_COST = 1


class BusyPolicy(str, Enum):
    REJECT = "reject"
    QUEUE = "queue"


def default_vault_path() -> Path:
    """Return the vault file location under the user's data directory.

    Honors ``CYFER_VAULT_PATH`` first, then ``XDG_DATA_HOME``, falling back to
    ``~/.local/share``.
    """
    override = os.environ.get("CYFER_VAULT_PATH")
    if override:
        return Path(override).expanduser()
    base = os.environ.get("XDG_DATA_HOME")
    data_dir = Path(base) if base else Path.home() / ".local" / "share"
    return data_dir / "cyfer" / "vault.json"


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError as err:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from err


class SessionConfig(BaseModel):
    """Validated settings for the session controller and its bridge."""

    min_password_length: int = Field(default=DEFAULT_MIN_PASSWORD_LENGTH, ge=1)
    busy_policy: BusyPolicy = BusyPolicy.REJECT
    engine_url: Optional[str] = None
    bridge_timeout: float = Field(default=DEFAULT_BRIDGE_TIMEOUT, gt=0)

    @field_validator("engine_url")
    @classmethod
    def validate_engine_url(cls, v: Optional[str]) -> Optional[str]:
        """Ensure a remote engine URL is http(s) and strip the trailing slash."""
        if v is None or v == "":
            return None
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"Unsupported engine URL scheme: {v}")
        return v.rstrip("/")

    @classmethod
    def from_env(cls) -> "SessionConfig":
        """Create SessionConfig by loading values from environment."""
        timeout = os.environ.get("CYFER_BRIDGE_TIMEOUT")
        return cls(
            min_password_length=_env_int(
                "CYFER_MIN_PASSWORD_LENGTH", DEFAULT_MIN_PASSWORD_LENGTH
            ),
            busy_policy=os.environ.get("CYFER_BUSY_POLICY", "reject").lower(),
            engine_url=os.environ.get("CYFER_ENGINE_URL"),
            bridge_timeout=float(timeout) if timeout else DEFAULT_BRIDGE_TIMEOUT,
        )


class EngineConfig(BaseModel):
    """Validated settings for the local secrets engine."""

    vault_path: Path
    m_cost_kib: int = Field(default=DEFAULT_KDF_M_COST)
    t_cost: int = Field(default=DEFAULT_KDF_T_COST, ge=1)
    p_cost: int = Field(default=DEFAULT_KDF_P_COST, ge=1)

    @field_validator("m_cost_kib")
    @classmethod
    def validate_memory_cost(cls, v: int) -> int:
        """Argon2 requires at least 8 KiB of memory."""
        if v < 8:
            raise ValueError(f"KDF memory cost must be at least 8 KiB, got {v}")
        return v

    @classmethod
    def from_env(cls) -> "EngineConfig":
        """Create EngineConfig by loading values from environment."""
        config = cls(
            vault_path=default_vault_path(),
            m_cost_kib=_env_int("CYFER_KDF_M_COST", DEFAULT_KDF_M_COST),
            t_cost=_env_int("CYFER_KDF_T_COST", DEFAULT_KDF_T_COST),
            p_cost=_env_int("CYFER_KDF_P_COST", DEFAULT_KDF_P_COST),
        )
        logger.debug("Engine configured with vault at %s", config.vault_path)
        return config
