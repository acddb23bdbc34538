"""Background extraction worker.

Callers enqueue an ``ExtractionJob`` and return at once; daemon threads
drain the queue and run the pipeline. A job whose record could not be
stored is delivered again, up to a fixed number of attempts.
"""

import queue
import threading
from dataclasses import dataclass, replace
from pathlib import Path

from batchdoc.errors import PersistenceFailure
from batchdoc.utils.logger import get_logger

from .orchestrator import ExtractionOrchestrator

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExtractionJob:
    """One attachment waiting for extraction."""

    attachment_id: int
    batch_id: int
    file_path: Path
    original_filename: str
    attempt: int = 1


class ExtractionWorker:
    """Runs queued extraction jobs on a small pool of daemon threads.

    Args:
        orchestrator: Pipeline that processes each job.
        num_workers: Number of consumer threads.
        max_delivery_attempts: Deliveries per job before it is dropped
            after repeated persistence failures.
    """

    def __init__(
        self,
        orchestrator: ExtractionOrchestrator,
        num_workers: int = 1,
        max_delivery_attempts: int = 3,
    ) -> None:
        self.orchestrator = orchestrator
        self.num_workers = num_workers
        self.max_delivery_attempts = max_delivery_attempts
        self._queue: queue.Queue[ExtractionJob | None] = queue.Queue()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def depth(self) -> int:
        """Approximate number of jobs waiting to be processed."""
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return any(thread.is_alive() for thread in self._threads)

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._threads = [
                threading.Thread(
                    target=self._consume,
                    name=f"extraction-worker-{i}",
                    daemon=True,
                )
                for i in range(self.num_workers)
            ]
            for thread in self._threads:
                thread.start()
        logger.info("Started %d extraction worker threads", self.num_workers)

    def stop(self, timeout: float | None = None) -> list[ExtractionJob]:
        """Let queued jobs finish, then stop every worker thread.

        Jobs re-queued behind the stop sentinels are removed from the queue
        and logged.

        Returns:
            Jobs that were still queued once the threads exited.
        """
        with self._lock:
            threads = self._threads
            for _ in threads:
                self._queue.put(None)
            for thread in threads:
                thread.join(timeout)
            self._threads = []
            alive = any(thread.is_alive() for thread in threads)
            undelivered = [] if alive else self._drain()
        logger.info("Stopped extraction workers")
        return undelivered

    def _drain(self) -> list[ExtractionJob]:
        undelivered: list[ExtractionJob] = []
        while True:
            try:
                job = self._queue.get_nowait()
            except queue.Empty:
                return undelivered
            self._queue.task_done()
            if job is not None:
                logger.warning(
                    "Attachment %d was not processed before shutdown (attempt %d)",
                    job.attachment_id,
                    job.attempt,
                )
                undelivered.append(job)

    def submit(self, job: ExtractionJob) -> int:
        """Enqueue a job without waiting for it to run.

        Returns:
            Queue depth after the job was added.
        """
        self._queue.put(job)
        logger.info(
            "Queued extraction for attachment %d (attempt %d)",
            job.attachment_id,
            job.attempt,
        )
        return self.depth

    def join(self) -> None:
        """Block until every queued job has been processed."""
        self._queue.join()

    def _consume(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                self._run(job)
            finally:
                self._queue.task_done()

    def _run(self, job: ExtractionJob) -> None:
        try:
            result = self.orchestrator.process_file(
                job.file_path,
                job.original_filename,
                job.attachment_id,
                job.batch_id,
            )
        except PersistenceFailure as exc:
            if job.attempt >= self.max_delivery_attempts:
                logger.error(
                    "Dropping attachment %d after %d attempts: %s",
                    job.attachment_id,
                    job.attempt,
                    exc,
                )
                return
            logger.warning(
                "Persistence failed for attachment %d, re-queueing: %s",
                job.attachment_id,
                exc,
            )
            self._queue.put(replace(job, attempt=job.attempt + 1))
            return
        except Exception:
            logger.exception("Unexpected error processing attachment %d", job.attachment_id)
            return

        logger.info(
            "Attachment %d processed: success=%s extraction=%s",
            job.attachment_id,
            result.success,
            result.extraction_id,
        )
