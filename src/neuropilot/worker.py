# src/neuropilot/worker.py

"""
Background worker entrypoint.

Initializes logging, builds AppState (migrations run there), then keeps the
recurring-task window filled until interrupted. There is no interactive
surface here; presentation layers embed create_initial_state directly.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging

from .bootstrap import create_initial_state
from .config import get_settings
from .core.state import AppState
from .logging_setup import setup_logging
from .tasks.task_scheduler import run_recurrence_scheduler

logger = logging.getLogger(__name__)


async def run_worker(state: AppState, *, stop: asyncio.Event | None = None) -> None:
    """Run the recurrence loop until `stop` is set (forever when None)."""
    settings = state.settings
    loop_task = asyncio.create_task(
        run_recurrence_scheduler(
            state.recurrence,
            days_ahead=int(getattr(settings, "recurrence_days_ahead", 7)),
            interval_seconds=float(getattr(settings, "recurrence_interval_seconds", 300.0)),
        )
    )
    try:
        if stop is None:
            await loop_task
        else:
            await stop.wait()
    finally:
        loop_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await loop_task


def main() -> None:
    settings = get_settings()

    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)
    setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s...", settings.app_name)
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run_worker(state))
    except KeyboardInterrupt:
        logger.info("Interrupted, shutting down...")
    finally:
        logger.info("Bye.")


if __name__ == "__main__":
    main()
