import json
import random
import time
from typing import Any, Callable, Dict, List, Optional

import structlog

from taskengine.config import DEFAULT_SERVICE_TIMEOUT_S
from taskengine.models.service_config import ServiceConfiguration
from taskengine.schemas.responses import ServiceResponse
from taskengine.templates.mock_services import get_mock_service_template

logger = structlog.get_logger(__name__)


def select_error_scenario(scenarios: Optional[List[Dict[str, Any]]], roll: float) -> Optional[Dict[str, Any]]:
    """Pick the first scenario whose cumulative probability exceeds ``roll``.

    ``roll`` is a uniform draw in [0, 1). Scenarios are walked in declaration
    order, so a probability of 1.0 always wins and a list summing to 0 never does.
    """
    if not scenarios:
        return None
    cumulative = 0.0
    for scenario in scenarios:
        if not isinstance(scenario, dict):
            raise TypeError(f"error scenario must be an object, got {type(scenario).__name__}")
        cumulative += float(scenario.get("probability", 0) or 0)
        if roll < cumulative:
            return scenario
    return None


class MockExecutionBackend:
    """Simulates a third-party call from a named template or an inline definition."""

    def __init__(self, rng: Optional[random.Random] = None, sleep: Optional[Callable[[float], None]] = None):
        self._rng = rng or random.Random()
        self._sleep = sleep or time.sleep

    def resolve_definition(self, config: ServiceConfiguration) -> Optional[Dict[str, Any]]:
        if config.mock_template_id:
            template = get_mock_service_template(config.mock_template_id)
            if template:
                return {
                    "success_response": template["success_response"],
                    "error_scenarios": template.get("error_scenarios") or [],
                }
        if config.mock_definition:
            return config.mock_definition
        return None

    def execute(self, endpoint: str, input_data: Dict[str, Any], config: ServiceConfiguration) -> ServiceResponse:
        t0 = time.monotonic()

        def elapsed_ms() -> int:
            return int((time.monotonic() - t0) * 1000)

        definition = self.resolve_definition(config)
        if definition is None:
            return ServiceResponse(
                status="error",
                error="No mock definition or template found",
                status_code=500,
                execution_time_ms=elapsed_ms(),
            )

        try:
            if not isinstance(definition, dict):
                raise TypeError(f"expected an object, got {type(definition).__name__}")
            scenario = select_error_scenario(definition.get("error_scenarios"), self._rng.random())
            timeout_s = float(config.timeout_seconds or DEFAULT_SERVICE_TIMEOUT_S)

            if scenario:
                payload = scenario.get("response") or {}
                delay_s = float(scenario.get("delay_ms") or 0) / 1000.0
                logger.info("mock_scenario_selected", service=config.service_name, scenario=scenario.get("name"))

                # The hard deadline applies to simulated calls too
                if delay_s > timeout_s:
                    self._sleep(timeout_s)
                    return ServiceResponse(
                        status="error",
                        error=f"Request timeout after {config.timeout_seconds or DEFAULT_SERVICE_TIMEOUT_S} seconds",
                        data=payload,
                        status_code=408,
                        execution_time_ms=elapsed_ms(),
                    )
                if delay_s:
                    self._sleep(delay_s)
                return ServiceResponse(
                    status="error",
                    error=json.dumps(payload),
                    data=payload,
                    status_code=scenario.get("status_code") or 500,
                    execution_time_ms=elapsed_ms(),
                )

            success_response = definition["success_response"]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            return ServiceResponse(
                status="error",
                error=f"Malformed mock definition: {e}",
                status_code=500,
                execution_time_ms=elapsed_ms(),
            )

        # Realistic processing time, 100-500ms
        self._sleep(self._rng.random() * 0.4 + 0.1)
        return ServiceResponse(
            status="success",
            data=success_response,
            status_code=200,
            execution_time_ms=elapsed_ms(),
        )
