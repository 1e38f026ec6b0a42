"""Delegated optimizer contract and transports.

The runner lives in jollyplanner.optimizer.delegated.
"""

from jollyplanner.optimizer.contract import (
    GOALS,
    OptimizerRequest,
    OptimizerResponse,
    ProposedBooking,
    build_request,
)
from jollyplanner.optimizer.transport import GeminiTransport, OptimizerTransport

__all__ = [
    "GOALS",
    "GeminiTransport",
    "OptimizerRequest",
    "OptimizerResponse",
    "OptimizerTransport",
    "ProposedBooking",
    "build_request",
]
