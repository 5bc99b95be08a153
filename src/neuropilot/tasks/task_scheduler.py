# src/neuropilot/tasks/task_scheduler.py

from __future__ import annotations

"""
Recurrence scheduler.

A small polling loop that keeps the rolling window of recurring task
instances filled:
- runs RecurrenceGenerator.generate_instances in a worker thread,
- logs failures and keeps going,
- sleeps interval_seconds between passes.

Startup ordering (migrations first) is the caller's job, see bootstrap.
"""

import asyncio
import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class InstanceGenerator(Protocol):
    def generate_instances(self, days_ahead: int) -> int: ...


async def run_generation_pass(generator: InstanceGenerator, *, days_ahead: int) -> int:
    """One expansion pass off the event loop thread. Returns rows created (0 on failure)."""
    try:
        created = await asyncio.to_thread(generator.generate_instances, int(days_ahead))
    except Exception:
        logger.exception("generate_instances failed days_ahead=%s", days_ahead)
        return 0
    if created:
        logger.info("Recurrence pass created %d task(s)", created)
    else:
        logger.debug("Recurrence pass: nothing to create")
    return created


async def run_recurrence_scheduler(
        generator: InstanceGenerator,
        *,
        days_ahead: int = 7,
        interval_seconds: float = 300.0,
) -> None:
    """
    Simple polling scheduler.

    Every interval_seconds:
    - expand active templates for [today, today + days_ahead]
    - a failing pass is logged; the next tick retries from scratch
      (generation is idempotent, so a partial pass is harmless)

    To stop the scheduler, cancel the coroutine/task.
    """
    sleep_s = max(0.01, float(interval_seconds))

    while True:
        await run_generation_pass(generator, days_ahead=days_ahead)
        await asyncio.sleep(sleep_s)
