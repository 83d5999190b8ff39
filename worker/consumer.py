# ============================================================================
# JOB CONSUMER
# ============================================================================
# EPOCH: 1 - WORKFLOW ORCHESTRATION
# STATUS: Core - Job store polling consumer
# PURPOSE: Claim jobs per queue and dispatch them to the executor
# CREATED: 19 OCT 2026
# ============================================================================
"""
Job Consumer

Polls the job store for claimable jobs and hands them to the executor.

Features:
- One polling loop per queue, bounded by the queue's max workers
  (asyncio.Semaphore)
- Sequence ordering is enforced by the store at claim time
- Rescuer loop returning jobs stuck in running to the retry path
- Graceful shutdown: stop claiming, wait for active jobs, then cancel
"""

import asyncio
import signal
from datetime import timedelta
from typing import Dict, List, Optional, Set

from core.config import Defaults, get_defaults
from core.errors import WorkflowError
from core.logging import get_logger, log_context
from core.models import Job
from repositories.job_store import JobStore
from worker.contracts import ExecutionResult, WorkerConfig
from worker.executor import JobExecutor

logger = get_logger(__name__)


# ============================================================================
# QUEUE CONSUMER
# ============================================================================

class QueueConsumer:
    """Claims and runs jobs of one queue."""

    def __init__(
        self,
        queue: str,
        store: JobStore,
        executor: JobExecutor,
        max_workers: int,
        poll_interval: float = 1.0,
    ):
        self.queue = queue
        self.store = store
        self.executor = executor
        self.max_workers = max_workers
        self.poll_interval = poll_interval

        self._semaphore = asyncio.Semaphore(max_workers)
        self._active_tasks: Set[asyncio.Task] = set()

        # Stats
        self.jobs_claimed = 0
        self.jobs_completed = 0
        self.jobs_failed = 0

    @property
    def active_count(self) -> int:
        return len(self._active_tasks)

    async def poll_once(self) -> List[asyncio.Task]:
        """
        Claim as many jobs as there are free slots and start them.

        Returns:
            Tasks started by this poll
        """
        free = self.max_workers - len(self._active_tasks)
        if free <= 0:
            return []

        jobs = await self.store.fetch_available(self.queue, free, self.executor.worker_id)
        self.jobs_claimed += len(jobs)

        started = []
        for job in jobs:
            task = asyncio.create_task(self._run_job(job))
            self._active_tasks.add(task)
            task.add_done_callback(self._active_tasks.discard)
            started.append(task)
        return started

    async def run(self, shutdown: asyncio.Event) -> None:
        """Poll until shutdown is set."""
        with log_context(queue=self.queue):
            logger.info(f"Consuming queue {self.queue} (max_workers={self.max_workers})")
            while not shutdown.is_set():
                try:
                    started = await self.poll_once()
                except WorkflowError as e:
                    logger.error(f"Claim failed on {self.queue}: {e}")
                    started = []

                if not started:
                    try:
                        await asyncio.wait_for(shutdown.wait(), timeout=self.poll_interval)
                    except asyncio.TimeoutError:
                        pass
                else:
                    # Yield so started jobs get scheduled before the next claim
                    await asyncio.sleep(0)

    async def drain(self, timeout: float) -> None:
        """Wait for active jobs; cancel whatever is left after timeout."""
        if not self._active_tasks:
            return

        logger.info(f"Waiting for {len(self._active_tasks)} active jobs on {self.queue}...")
        done, pending = await asyncio.wait(set(self._active_tasks), timeout=timeout)
        if pending:
            logger.warning(f"Shutdown timeout - cancelling {len(pending)} jobs on {self.queue}")
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

    async def _run_job(self, job: Job) -> Optional[ExecutionResult]:
        async with self._semaphore:
            try:
                result = await self.executor.execute(job)
            except WorkflowError as e:
                # Outcome not recorded; the rescuer will pick the job up
                logger.error(f"Could not record outcome of job {job.id}: {e}")
                self.jobs_failed += 1
                return None

        if result.success:
            self.jobs_completed += 1
        else:
            self.jobs_failed += 1
        return result

    def stats(self) -> Dict[str, int]:
        return {
            "claimed": self.jobs_claimed,
            "completed": self.jobs_completed,
            "failed": self.jobs_failed,
            "active": self.active_count,
            "max_workers": self.max_workers,
        }


# ============================================================================
# JOB CONSUMER
# ============================================================================

class JobConsumer:
    """
    Runs one QueueConsumer per configured queue plus the rescuer.
    """

    def __init__(
        self,
        config: WorkerConfig,
        store: JobStore,
        executor: JobExecutor,
        defaults: Optional[Defaults] = None,
    ):
        """
        Initialize consumer.

        Args:
            config: Worker configuration
            store: Job store
            executor: Job executor
            defaults: Queue limits and timing (env-derived if not provided)
        """
        self.config = config
        self.store = store
        self.executor = executor
        self.defaults = defaults or get_defaults()

        self.consumers: Dict[str, QueueConsumer] = {
            queue: QueueConsumer(
                queue=queue,
                store=store,
                executor=executor,
                max_workers=self.defaults.queues.get_max_workers(queue),
                poll_interval=self.defaults.jobs.poll_interval_seconds,
            )
            for queue in config.queues
        }

        # State
        self._running = False
        self._shutdown_event = asyncio.Event()
        self._loops: List[asyncio.Task] = []

        self.jobs_rescued = 0

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start polling loops and the rescuer."""
        if self._running:
            logger.warning("Consumer already running")
            return

        logger.info(
            f"Starting consumer: worker_id={self.config.worker_id}, "
            f"queues={list(self.consumers)}"
        )

        self._running = True
        self._shutdown_event.clear()

        self._loops = [
            asyncio.create_task(consumer.run(self._shutdown_event))
            for consumer in self.consumers.values()
        ]
        self._loops.append(asyncio.create_task(self._rescue_loop()))

        logger.info("Consumer started")

    async def stop(self) -> None:
        """Stop the consumer gracefully."""
        if not self._running:
            return

        logger.info("Stopping consumer...")
        self._running = False
        self._shutdown_event.set()

        await asyncio.gather(*self._loops, return_exceptions=True)
        self._loops = []

        for consumer in self.consumers.values():
            await consumer.drain(self.config.shutdown_timeout_seconds)

        logger.info(f"Consumer stopped. Stats: {self.stats()}")

    def request_stop(self) -> None:
        """Ask run() to stop; safe to call from a signal handler."""
        self._shutdown_event.set()

    async def run(self) -> None:
        """Run until request_stop() or stop() is called."""
        await self.start()
        try:
            await self._shutdown_event.wait()
        finally:
            await self.stop()

    async def rescue_once(self) -> int:
        """Return jobs running longer than twice the job timeout to the retry path."""
        older_than = timedelta(seconds=self.defaults.jobs.rescue_after_seconds)
        rescued = await self.store.rescue_stuck(older_than)
        self.jobs_rescued += rescued
        return rescued

    async def _rescue_loop(self) -> None:
        interval = self.defaults.jobs.rescue_interval_seconds
        while not self._shutdown_event.is_set():
            try:
                await self.rescue_once()
            except WorkflowError as e:
                logger.error(f"Rescue failed: {e}")

            try:
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    def stats(self) -> Dict[str, object]:
        return {
            "worker_id": self.config.worker_id,
            "running": self._running,
            "rescued": self.jobs_rescued,
            "queues": {queue: consumer.stats() for queue, consumer in self.consumers.items()},
        }


# ============================================================================
# CONVENIENCE FUNCTIONS
# ============================================================================

def install_signal_handlers(consumer: JobConsumer) -> None:
    """Stop the consumer on SIGTERM/SIGINT."""
    loop = asyncio.get_running_loop()

    def shutdown_handler():
        logger.info("Shutdown signal received")
        consumer.request_stop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        try:
            loop.add_signal_handler(sig, shutdown_handler)
        except NotImplementedError:
            # Windows doesn't support add_signal_handler
            pass


# ============================================================================
# EXPORTS
# ============================================================================

__all__ = [
    "QueueConsumer",
    "JobConsumer",
    "install_signal_handlers",
]
