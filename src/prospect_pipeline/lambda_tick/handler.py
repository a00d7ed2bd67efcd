"""Lambda entry point: scheduled event -> one dispatcher tick.

Uses AWS Lambda Powertools for structured logging and tracing. Each
invocation builds its own service container inside a fresh event loop, runs
one tick and closes every client before returning.
"""

import asyncio
from typing import Any

from aws_lambda_powertools import Logger, Tracer

from prospect_pipeline.container import ServiceContainer

# Module-level singletons: survive across warm Lambda invocations
logger = Logger(service="prospect-pipeline-tick", log_uncaught_exceptions=True)
tracer = Tracer(service="prospect-pipeline-tick")


async def run_tick() -> dict[str, Any]:
    """Build the container, run one tick, tear down."""
    container = await ServiceContainer.from_config()
    try:
        result = await container.dispatcher.tick()
    finally:
        await container.close()
    return result.to_dict()


@logger.inject_lambda_context(log_event=False)
@tracer.capture_lambda_handler
def lambda_handler(event: dict, context) -> dict:
    """Lambda entry point: one bounded claim loop per scheduled invocation."""
    result = asyncio.run(run_tick())

    if result["aborted"]:
        logger.error("tick.aborted", extra={"errors": result["errors"]})
    else:
        logger.info(
            "tick.complete",
            extra={
                "worker_id": result["worker_id"],
                "claimed": result["claimed"],
                "succeeded": result["succeeded"],
                "failed": result["failed"],
                "skipped": result["skipped"],
            },
        )
    return result
