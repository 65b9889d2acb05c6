# src/reallocator/core/config.py

import logging
import os
import re
from datetime import timedelta

from dotenv import load_dotenv

# Load environment variables from a .env file located in the project root
dotenv_path = os.path.join(os.path.dirname(__file__), "..", "..", "..", ".env")
load_dotenv(dotenv_path=dotenv_path)

_DURATION_PATTERN = re.compile(r"^(\d+)([smh])$")


def parse_duration(value: str) -> timedelta:
    """
    Parses a duration string like '30s', '15m' or '1h' into a timedelta.
    """
    match = _DURATION_PATTERN.match(value.strip().lower())
    if not match:
        raise ValueError(f"Invalid duration format: '{value}'. Use 's', 'm', or 'h'.")

    amount, unit = int(match.group(1)), match.group(2)
    unit_map = {"s": "seconds", "m": "minutes", "h": "hours"}
    return timedelta(**{unit_map[unit]: amount})


def _env_bool(key: str, default: str) -> bool:
    return os.getenv(key, default).lower() in ("true", "1", "t", "y", "yes")


class Config:
    """
    Handles the application's configuration by loading values from environment variables.
    """

    def __init__(self):
        # --- Cloud provider secrets ---
        self.CLOUD_PROVIDER_TOKEN = self._get_secret("CLOUD_PROVIDER_TOKEN")

    @staticmethod
    def _get_secret(key: str, default: str = None) -> str:
        """
        Retrieves a secret from a file (mounted secret volume) or falls back to environment variable.

        Raises:
            PermissionError: If the secret file exists but cannot be read due to permissions.
            IOError: If the secret file exists but cannot be read due to I/O errors.
        """
        secret_file = f"/etc/reallocator/secrets/{key}"
        if os.path.exists(secret_file):
            try:
                with open(secret_file, "r") as f:
                    value = f.read().strip()
                    logging.getLogger(__name__).debug(f"Loaded secret '{key}' from {secret_file}")
                    return value
            except PermissionError as e:
                raise PermissionError(
                    f"Secret file '{secret_file}' exists but cannot be read due to permission denied. "
                    f"Please check file permissions or run with appropriate privileges."
                ) from e
            except (IOError, OSError) as e:
                raise IOError(
                    f"Secret file '{secret_file}' exists but cannot be read: {e}. "
                    f"Please check the file integrity and system resources."
                ) from e
        return os.getenv(key, default)

    # --- Logging variables ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # --- Provisioner custom resource ---
    PROVISIONER_GROUP = os.getenv("PROVISIONER_GROUP", "karpenter.sh")
    PROVISIONER_VERSION = os.getenv("PROVISIONER_VERSION", "v1alpha3")
    PROVISIONER_PLURAL = os.getenv("PROVISIONER_PLURAL", "provisioners")

    # --- Reconciliation timing ---
    # Expiry is time driven, so successful cycles are always revisited.
    REVISIT_INTERVAL_SECONDS = float(os.getenv("REVISIT_INTERVAL_SECONDS", "5"))
    FAILED_TO_JOIN_TIMEOUT = os.getenv("FAILED_TO_JOIN_TIMEOUT", "15m")
    DRAIN_RETRY_INTERVAL_SECONDS = float(os.getenv("DRAIN_RETRY_INTERVAL_SECONDS", "10"))
    RESYNC_INTERVAL = os.getenv("RESYNC_INTERVAL", "5m")
    WATCH_TIMEOUT_SECONDS = int(os.getenv("WATCH_TIMEOUT_SECONDS", "300"))

    # --- Work queue rate limiting ---
    RATE_LIMIT_BASE_DELAY = float(os.getenv("RATE_LIMIT_BASE_DELAY", "0.1"))
    RATE_LIMIT_MAX_DELAY = float(os.getenv("RATE_LIMIT_MAX_DELAY", "10"))
    RATE_LIMIT_QPS = float(os.getenv("RATE_LIMIT_QPS", "10"))
    RATE_LIMIT_BURST = int(os.getenv("RATE_LIMIT_BURST", "100"))

    # --- HTTP client defaults ---
    DEFAULT_TIMEOUT_CONNECT = float(os.getenv("DEFAULT_TIMEOUT_CONNECT", "5"))
    DEFAULT_TIMEOUT_READ = float(os.getenv("DEFAULT_TIMEOUT_READ", "30"))
    USER_AGENT = os.getenv("USER_AGENT", "reallocator")

    # --- Telemetry ---
    OTEL_ENABLED = _env_bool("OTEL_ENABLED", "False")

    # CLOUD_PROVIDER and CLOUD_PROVIDER_ENDPOINT are resolved at access time so
    # tests and callers can change env vars after import.
    @property
    def CLOUD_PROVIDER(self) -> str:
        return os.getenv("CLOUD_PROVIDER", "fake").lower()

    @property
    def CLOUD_PROVIDER_ENDPOINT(self) -> str:
        return os.getenv("CLOUD_PROVIDER_ENDPOINT", "")

    @property
    def CLOUD_PROVIDER_VERIFY_CERTS(self) -> bool:
        return _env_bool("CLOUD_PROVIDER_VERIFY_CERTS", "True")

    @property
    def failed_to_join_timeout(self) -> timedelta:
        return parse_duration(self.FAILED_TO_JOIN_TIMEOUT)

    def validate_instance(self):
        if self.CLOUD_PROVIDER not in ("fake", "http"):
            raise ValueError("CLOUD_PROVIDER must be 'fake' or 'http'")
        if self.CLOUD_PROVIDER == "http" and not self.CLOUD_PROVIDER_ENDPOINT:
            raise ValueError("CLOUD_PROVIDER_ENDPOINT must be set for the http cloud provider")
        for key in ("FAILED_TO_JOIN_TIMEOUT", "RESYNC_INTERVAL"):
            try:
                parse_duration(getattr(self, key))
            except ValueError as e:
                raise ValueError(f"{key} format is invalid: {e}") from e
        if self.RATE_LIMIT_BASE_DELAY <= 0 or self.RATE_LIMIT_MAX_DELAY < self.RATE_LIMIT_BASE_DELAY:
            raise ValueError("RATE_LIMIT_MAX_DELAY must be >= RATE_LIMIT_BASE_DELAY > 0.")
        if self.RATE_LIMIT_QPS <= 0 or self.RATE_LIMIT_BURST < 1:
            raise ValueError("RATE_LIMIT_QPS must be > 0 and RATE_LIMIT_BURST >= 1.")
        if self.CLOUD_PROVIDER == "fake":
            logging.warning("CLOUD_PROVIDER is 'fake'; instances will not actually be terminated.")


# Instantiate the config to be imported by other modules
config = Config()
config.validate_instance()
