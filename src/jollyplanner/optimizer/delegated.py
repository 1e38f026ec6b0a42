"""Delegated optimizer runner.

Shapes the request, calls the external service through a transport, and
turns the answer into a validated AssignmentPlan. Any failure aborts the
whole run; there is no fallback to another strategy.
"""

import logging
from typing import Optional

from jollyplanner.config import OptimizerConfig
from jollyplanner.domain.plan import AssignmentPlan
from jollyplanner.errors import CredentialError, SchemaError
from jollyplanner.optimizer.contract import OptimizerRequest, OptimizerResponse
from jollyplanner.optimizer.transport import GeminiTransport, OptimizerTransport
from jollyplanner.validation.plan_validator import PlanValidator

logger = logging.getLogger(__name__)

STRATEGY_NAME = "delegated"


class DelegatedOptimizer:
    """Runs one delegated optimization.

    Example:
        >>> optimizer = DelegatedOptimizer(OptimizerConfig.from_env())
        >>> plan = asyncio.run(optimizer.optimize(request))
    """

    def __init__(
        self,
        config: Optional[OptimizerConfig] = None,
        transport: Optional[OptimizerTransport] = None,
        validator: Optional[PlanValidator] = None,
    ):
        self.config = config or OptimizerConfig.from_env()
        self.transport = transport or GeminiTransport(self.config)
        self.validator = validator or PlanValidator()

    def check_credentials(self) -> None:
        """Raise CredentialError if no API key is configured."""
        if not self.config.has_credentials:
            raise CredentialError(
                "The delegated optimizer needs an API key; set JOLLY_OPTIMIZER_API_KEY "
                "or use the heuristic strategy"
            )

    async def optimize(self, request: OptimizerRequest) -> AssignmentPlan:
        """Produce a validated plan for a request.

        Raises:
            CredentialError: If no API key is configured (checked before any call).
            ExternalCallError: If the service call fails.
            SchemaError: If the answer is malformed or fails validation.
        """
        self.check_credentials()
        if not request.shifts:
            return AssignmentPlan(strategy=STRATEGY_NAME)

        text = await self.transport.complete(request.render_prompt())
        response = OptimizerResponse.from_text(text)

        result = self.validator.validate(response, request, strategy=STRATEGY_NAME)
        for warning in result.warnings:
            logger.warning("Optimizer plan: %s", warning)
        if not result.is_valid:
            logger.warning("Optimizer plan rejected with %d issues", len(result.issues))
            raise SchemaError("The optimizer plan failed validation", result.messages)

        logger.info(
            "Optimizer plan accepted: %d assignments, %d reported missing",
            len(result.plan.entries), len(result.plan.missing_shift_ids),
        )
        return result.plan
