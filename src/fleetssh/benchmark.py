"""Search for a safe concurrency ceiling by probing a subset of hosts."""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from typing import Callable, Sequence

from .config import RunConfig
from .errors import ConfigurationError, is_overload
from .executor import Executor
from .hosts import HostAddress

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CalibrationStep:
    """Observed overload rate at one concurrency level."""

    concurrency: int
    probed: int
    overloaded: int

    @property
    def rate(self) -> float:
        return self.overloaded / self.probed


@dataclass
class CalibrationResult:
    recommended: int | None
    steps: list[CalibrationStep] = field(default_factory=list)


ExecutorFactory = Callable[[RunConfig], Executor]
StepCallback = Callable[[CalibrationStep], None]


class Calibrator:
    """Raise concurrency one step at a time until overload failures exceed the threshold.

    Each round probes the first ``size`` hosts, and ``size`` shrinks as the
    concurrency grows so high-concurrency rounds touch fewer hosts. The
    recommendation is the last level whose overload rate stayed at or
    below the threshold.
    """

    def __init__(
        self,
        run: RunConfig,
        max_concurrency: int,
        executor_factory: ExecutorFactory = Executor,
        command: str = "",
        threshold: float = 0.10,
        start_concurrency: int = 2,
        probe_size: int = 10,
        on_step: StepCallback | None = None,
    ):
        self.run_config = run
        self.max_concurrency = max_concurrency
        self.executor_factory = executor_factory
        self.command = command
        self.threshold = threshold
        self.start_concurrency = start_concurrency
        self.probe_size = probe_size
        self.on_step = on_step

    async def run(self, hosts: Sequence[HostAddress]) -> CalibrationResult:
        hosts = list(hosts)
        if not hosts:
            raise ConfigurationError("Benchmark failed. There are no hosts to test")

        logger.info("benchmark started over %d hosts", len(hosts))
        result = CalibrationResult(recommended=None)
        concurrency = self.start_concurrency
        size = self.probe_size
        rate = 0.0

        while rate <= self.threshold and concurrency <= self.max_concurrency:
            probe = hosts[: min(size, len(hosts))]
            run = dataclasses.replace(
                self.run_config,
                max_concurrent_sessions=concurrency,
                max_concurrent_agent_auths=concurrency,
            )
            executor = self.executor_factory(run)
            overloaded = 0
            async for response in executor.stream(probe, self.command):
                if not response.status and is_overload(response.failure):
                    overloaded += 1

            step = CalibrationStep(concurrency, len(probe), overloaded)
            result.steps.append(step)
            rate = step.rate
            logger.info(
                "With rate limit %d there is %.2f error rate.", concurrency, rate
            )
            if self.on_step:
                self.on_step(step)
            if rate <= self.threshold:
                result.recommended = concurrency

            concurrency += 1
            size = max(1, size * (concurrency - 1) // concurrency)

        return result
