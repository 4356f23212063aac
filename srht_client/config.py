"""Configuration management for srht-export."""

import ipaddress
import os
import shlex
import subprocess
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional

from dotenv import load_dotenv

# Service short names; each maps to the "<name>.sr.ht" service.
SERVICES = ("meta", "git", "hg", "builds", "paste", "lists", "todo")


@dataclass
class SrhtConfig:
    """Configuration for talking to one sr.ht instance."""

    # Instance hostname, e.g. "sr.ht"
    instance: str = "sr.ht"

    # Either a token or a command printing one is required
    token: Optional[str] = None
    token_cmd: Optional[str] = None

    # Explicit per-service origins, keyed by short name ("git")
    origins: Dict[str, str] = field(default_factory=dict)

    timeout: int = 30
    download_timeout: int = 600
    verify_ssl: bool = True
    log_level: str = "INFO"

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.instance:
            raise ValueError("instance is required")
        if not self.token and not self.token_cmd:
            raise ValueError("token or token_cmd is required")
        if self.timeout <= 0 or self.download_timeout <= 0:
            raise ValueError("timeouts must be positive")

        self.instance = self.instance.strip().rstrip("/")
        self.origins = {k: v.rstrip("/") for k, v in self.origins.items() if v}

    def origin_for(self, service: str) -> str:
        """
        Resolve the origin URL of a service.

        Args:
            service: Short service name ("git", "builds", ...)

        Returns:
            Origin URL without trailing slash

        Raises:
            ValueError: If no origin is configured and none can be derived
        """
        if service in self.origins:
            return self.origins[service]

        host = self.instance
        if "://" in host:
            host = host.split("://", 1)[1]
        if "." not in host or _is_ip(host):
            raise ValueError(
                f"failed to get origin for service {service!r} in instance {self.instance!r}"
            )
        return f"https://{service}.{host}"

    def resolve_token(self) -> str:
        """Return the access token, running token_cmd if configured."""
        if not self.token_cmd:
            return self.token or ""

        result = subprocess.run(
            shlex.split(self.token_cmd),
            check=True,
            capture_output=True,
            text=True,
        )
        fields = result.stdout.split()
        if not fields:
            raise ValueError("token command produced no output")
        return fields[0]

    @classmethod
    def from_env(cls, **overrides) -> "SrhtConfig":
        """Create configuration from environment variables with optional overrides."""
        load_dotenv()

        origins = {}
        for service in SERVICES:
            origin = os.getenv(f"SRHT_{service.upper()}_ORIGIN")
            if origin:
                origins[service] = origin

        config_dict = {
            "instance": os.getenv("SRHT_INSTANCE", "sr.ht"),
            "token": os.getenv("SRHT_TOKEN") or None,
            "token_cmd": os.getenv("SRHT_TOKEN_CMD") or None,
            "origins": origins,
            "timeout": int(os.getenv("SRHT_TIMEOUT", "30")),
            "download_timeout": int(os.getenv("SRHT_DOWNLOAD_TIMEOUT", "600")),
            "verify_ssl": os.getenv("SRHT_VERIFY_SSL", "true").lower() == "true",
            "log_level": os.getenv("LOG_LEVEL", "INFO"),
        }

        # Apply overrides (filter out None values from CLI)
        for key, value in overrides.items():
            if value is not None:
                config_dict[key] = value

        return cls(**config_dict)


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host.split(":", 1)[0])
    except ValueError:
        return False
    return True


def ensure_output_dir(path: Path) -> Path:
    """
    Ensure an export directory exists and return it.

    Args:
        path: Directory to create

    Returns:
        The same path, created with parents
    """
    path.mkdir(parents=True, exist_ok=True)
    return path
