"""
RQ Task Definitions
Entry points executed by RQ workers (see scripts/run_workers.py).
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from app.core.config import get_settings
from app.core.runtime import Runtime, build_runtime

logger = logging.getLogger(__name__)

_runtime: Optional[Runtime] = None


def get_worker_runtime() -> Runtime:
    """Components for this worker process, built once."""
    global _runtime
    if _runtime is None:
        _runtime = build_runtime(get_settings())
    return _runtime


def run_outfit_job_task(job_id: str) -> Dict[str, Any]:
    """
    RQ task: run one pipeline attempt for an outfit job.

    Pipeline failures are recorded on the job record, so the RQ job itself
    only fails for missing jobs or infrastructure errors.
    """
    logger.info(f"[Task] Starting outfit job: {job_id}")
    runtime = get_worker_runtime()
    actor = runtime.make_actor(job_id)

    async def _run_and_report():
        executed = await actor.run()
        return executed, await actor.status()

    executed, view = asyncio.run(_run_and_report())

    logger.info(f"[Task] Outfit job {job_id} finished with status {view.status.value}")
    return {
        "job_id": job_id,
        "executed": executed,
        "status": view.status.value,
    }
