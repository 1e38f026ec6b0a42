"""Configuration objects for the assignment strategies."""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

DEFAULT_MODEL = "gemini-2.5-pro"
DEFAULT_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"

# Checked in order; the first non-empty value wins.
API_KEY_VARIABLES = ("JOLLY_OPTIMIZER_API_KEY", "GEMINI_API_KEY", "API_KEY")


@dataclass
class OptimizerConfig:
    """Configuration for the delegated optimizer.

    Attributes:
        api_key: Credential for the external service. None means not configured.
        model: Model name passed to the service.
        base_url: Root URL of the generative API.
        timeout_seconds: Timeout for the whole external call.
    """

    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout_seconds: float = 60.0

    @property
    def has_credentials(self) -> bool:
        return bool(self.api_key and self.api_key.strip())

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "OptimizerConfig":
        """Build a config from environment variables.

        Args:
            environ: Mapping to read from (defaults to os.environ).
        """
        env = os.environ if environ is None else environ

        api_key = None
        for name in API_KEY_VARIABLES:
            value = env.get(name, "").strip()
            if value:
                api_key = value
                break

        timeout = env.get("JOLLY_OPTIMIZER_TIMEOUT", "").strip()
        return cls(
            api_key=api_key,
            model=env.get("JOLLY_OPTIMIZER_MODEL", "").strip() or DEFAULT_MODEL,
            base_url=env.get("JOLLY_OPTIMIZER_URL", "").strip() or DEFAULT_BASE_URL,
            timeout_seconds=float(timeout) if timeout else 60.0,
        )


@dataclass
class CPSATConfig:
    """Configuration for the CP-SAT assigner.

    Attributes:
        time_limit_seconds: Maximum solver runtime.
        num_workers: Number of parallel workers (0 = auto).
        load_weight: Weight on the heaviest floater's weekly minutes.
        distance_weight: Weight on total travel (tenths of a kilometre).
        unassigned_penalty: Cost of leaving one shift without a floater.
    """

    time_limit_seconds: float = 10.0
    num_workers: int = 0
    load_weight: int = 10
    distance_weight: int = 1
    unassigned_penalty: int = 1_000_000
