"""Temporal worker entry point for lfsfilter.

Connects to the Temporal server, registers the clean/smudge activities, and
runs the worker until interrupted. Workflows that schedule these activities
live in the enclosing automation product.
"""

from __future__ import annotations

import logging
import os

from temporalio.client import Client
from temporalio.contrib.pydantic import pydantic_data_converter
from temporalio.worker import Worker

from lfsfilter.activities import clean_file_activity, smudge_file_activity
from lfsfilter.config import load_settings

DEFAULT_TEMPORAL_ADDRESS = "localhost:7233"
LFSFILTER_TASK_QUEUE = "lfsfilter"
LFSFILTER_TEMPORAL_ADDRESS_ENV = "LFSFILTER_TEMPORAL_ADDRESS"

logger = logging.getLogger(__name__)


def build_worker(client: Client, task_queue: str = LFSFILTER_TASK_QUEUE) -> Worker:
    """Create a worker serving the filter activities on *task_queue*."""
    return Worker(
        client,
        task_queue=task_queue,
        activities=[
            clean_file_activity,
            smudge_file_activity,
        ],
    )


async def run_worker(address: str | None = None, *, task_queue: str = LFSFILTER_TASK_QUEUE) -> None:
    """Connect to Temporal and run the lfsfilter worker."""
    if address is None:
        address = os.environ.get(LFSFILTER_TEMPORAL_ADDRESS_ENV, DEFAULT_TEMPORAL_ADDRESS)

    # Surface bad settings at startup rather than on the first activity.
    settings = load_settings()
    logger.info("Filter tool: %s", settings.executable())

    client = await Client.connect(
        address,
        data_converter=pydantic_data_converter,
    )
    logger.info("Connected to Temporal at %s (task queue %s)", address, task_queue)

    worker = build_worker(client, task_queue)
    await worker.run()
