"""How a task's work is carried out, chosen once per task from its agent."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, ClassVar

if TYPE_CHECKING:
    from festflow.agents.base import ContentGenerator
    from festflow.execution.guard import Execution, ExecutionSink
    from festflow.tasks.models import Task

logger = logging.getLogger("festflow.execution.strategies")


class ExecutionStrategy(ABC):
    """One way of driving an In Progress task to its next resting state."""

    name: ClassVar[str]
    # Whether an operator override should stop the running work outright.
    cancel_on_release: ClassVar[bool] = False

    @abstractmethod
    async def run(self, execution: Execution, task: Task, sink: ExecutionSink) -> None: ...


class ContentGenerationStrategy(ExecutionStrategy):
    """Ask the content generator for output that a human must approve.

    The call is never cancelled. If an operator acted on the task while it
    was outstanding, the result is discarded when it arrives.
    """

    name = "content"

    def __init__(self, generator: ContentGenerator) -> None:
        self._generator = generator

    async def run(self, execution: Execution, task: Task, sink: ExecutionSink) -> None:
        logger.info("Generating content for task %s (%s)", task.id, task.title)
        try:
            content = await self._generator.generate(task)
        except Exception as exc:
            if execution.current:
                sink.record_failure(task.id, exc)
            else:
                logger.info("Ignoring failure of superseded execution for %s: %s", task.id, exc)
            return

        if not execution.current:
            sink.discard_generation(task.id, "the task was changed by an operator")
            return
        sink.accept_generation(task.id, content)


class SimulatedProgressStrategy(ExecutionStrategy):
    """Ramp progress to 100% over a random duration on a fixed tick.

    Never fails and never completes the task itself: the operator marks
    the finished work complete.
    """

    name = "simulated"
    cancel_on_release = True

    def __init__(
        self,
        min_seconds: float,
        max_seconds: float,
        tick_seconds: float,
        rng: random.Random | None = None,
    ) -> None:
        self._min = min_seconds
        self._max = max_seconds
        self._tick = tick_seconds
        self._rng = rng or random.Random()

    def pick_duration(self) -> float:
        return self._rng.uniform(self._min, self._max)

    async def run(self, execution: Execution, task: Task, sink: ExecutionSink) -> None:
        duration = self.pick_duration()
        steps = max(1, math.ceil(duration / self._tick))
        progress = float(task.progress)
        increment = (100.0 - progress) / steps
        logger.debug(
            "Simulating %s for %.2fs in %d ticks", task.id, duration, steps
        )

        for _ in range(steps - 1):
            await asyncio.sleep(self._tick)
            if not execution.current:
                return
            progress = min(99.0, progress + increment)
            if not sink.report_progress(task.id, int(progress)):
                return

        await asyncio.sleep(self._tick)
        if execution.current:
            sink.finish_simulation(task.id)
