"""
Queue worker - pulls triggers from Redis and runs their pipelines.
"""

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from engine.src.errors import EngineError
from engine.src.models.results import TriggerEvent
from engine.src.services.pipeline_runner import run_pipeline
from engine.src.services.queue import dequeue_trigger

logger = logging.getLogger(__name__)

async def get_next_trigger() -> Optional[TriggerEvent]:
    """Pull next trigger from Redis queue."""
    return await asyncio.to_thread(dequeue_trigger, 5)

async def process_trigger(trigger: TriggerEvent) -> bool:
    """
    Run one trigger. Returns True if a run record was stored.
    Runs are processed one after another: they share the working tree.
    """
    try:
        record = await asyncio.to_thread(run_pipeline, trigger)
    except EngineError as e:
        logger.error(f"Run for {trigger.repo_full_name} ({trigger.ref}) aborted: {e}")
        return False

    logger.info(f"Run {record.id} for {trigger.repo_full_name} stored: {record.status.value}")
    return True

async def worker_loop():
    """Main worker loop."""
    logger.info("Worker started, waiting for triggers...")

    while True:
        try:
            trigger = await get_next_trigger()

            if trigger:
                logger.info(f"Received trigger for {trigger.repo_full_name} ({trigger.ref})")
                await process_trigger(trigger)

        except ValidationError as e:
            logger.error(f"Discarding malformed trigger: {e}")
        except KeyboardInterrupt:
            logger.info("Worker shutting down...")
            break
        except Exception as e:
            logger.exception(f"Worker error: {e}")
            await asyncio.sleep(5)

def run_worker():
    """Entry point for worker."""
    asyncio.run(worker_loop())
