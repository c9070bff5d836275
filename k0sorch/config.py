"""Configuration management for the k0sorch application."""
import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file if it exists
load_dotenv()

class Config:
    """Application configuration with sensible defaults."""

    # k0s release downloads
    K0S_DOWNLOAD_URL: str = os.getenv(
        "K0S_DOWNLOAD_URL",
        "https://github.com/k0sproject/k0s/releases/download/{version}/k0s-{version}-{arch}"
    )
    BINARY_CACHE_DIR: Path = Path(os.getenv("K0SORCH_CACHE_DIR", "~/.cache/k0sorch")).expanduser()

    # Concurrency defaults
    DEFAULT_CONCURRENCY: int = int(os.getenv("K0SORCH_CONCURRENCY", "30"))
    DEFAULT_CONCURRENT_UPLOADS: int = int(os.getenv("K0SORCH_CONCURRENT_UPLOADS", "5"))

    # Timeouts (in seconds)
    API_TIMEOUT: int = int(os.getenv("API_TIMEOUT", "30"))
    SSH_TIMEOUT: int = int(os.getenv("SSH_TIMEOUT", "10"))
    COMMAND_TIMEOUT: int = int(os.getenv("COMMAND_TIMEOUT", "300"))
    WAIT_TIMEOUT: int = int(os.getenv("WAIT_TIMEOUT", "300"))
    POLL_INTERVAL: float = float(os.getenv("POLL_INTERVAL", "5"))

    # Retry configuration
    MAX_RETRIES: int = int(os.getenv("MAX_RETRIES", "3"))
    RETRY_DELAY: float = float(os.getenv("RETRY_DELAY", "1.0"))

    # Cluster lock
    LOCK_PATH: str = os.getenv("K0SORCH_LOCK_PATH", "/run/lock/k0sorch.lock")
    LOCK_KEEPALIVE: float = float(os.getenv("K0SORCH_LOCK_KEEPALIVE", "10"))
    LOCK_STALE_AFTER: int = int(os.getenv("K0SORCH_LOCK_STALE_AFTER", "30"))

    # Remote paths
    K0S_BINARY_PATH: str = "/usr/local/bin/k0s"
    K0S_CONFIG_PATH: str = "/etc/k0s/k0s.yaml"

    # Run state
    REGISTRY_PATH: Path = Path(os.getenv("K0SORCH_REGISTRY", "clusters/cluster-registry.json"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
    LOG_FORMAT: str = os.getenv(
        "LOG_FORMAT",
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    # Security
    REDACT_KEYS: tuple = ("token", "password", "secret", "key")

    @classmethod
    def validate(cls) -> None:
        """Validate numeric configuration."""
        positive = {
            "K0SORCH_CONCURRENCY": cls.DEFAULT_CONCURRENCY,
            "K0SORCH_CONCURRENT_UPLOADS": cls.DEFAULT_CONCURRENT_UPLOADS,
            "K0SORCH_LOCK_STALE_AFTER": cls.LOCK_STALE_AFTER,
        }
        invalid = [k for k, v in positive.items() if v <= 0]
        if invalid:
            raise ValueError(f"Configuration values must be positive: {', '.join(invalid)}")
        if cls.LOCK_KEEPALIVE >= cls.LOCK_STALE_AFTER:
            raise ValueError("K0SORCH_LOCK_KEEPALIVE must be shorter than K0SORCH_LOCK_STALE_AFTER")

# Don't validate on import to allow for dynamic configuration
# Call Config.validate() explicitly when needed
