from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, List, Optional, Set, Tuple

from app.config import DEFAULT_JOB_WORKERS, DEFAULT_MAX_CONCURRENCY, DEFAULT_SHUTDOWN_GRACE_S
from app.fetcher import FetchError, PageFetcher
from app.filters import is_in_scope, is_valid
from app.jobs import JobStatus, JobStore
from app.matching import contains_keyword

logger = logging.getLogger(__name__)


# -----------------------------
# Run state
# -----------------------------

@dataclass
class CrawlRunState:
    """
    Ephemeral state of one crawl run.

    frontier/visited are only touched from the event loop between awaits,
    so offer() is an atomic check-and-insert.
    """

    job_id: str
    keyword: str
    base_url: str
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY

    frontier: Deque[str] = field(default_factory=deque)
    visited: Set[str] = field(default_factory=set)
    in_flight: int = 0

    permits: asyncio.Semaphore = field(init=False)
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    tasks: Set[asyncio.Task] = field(default_factory=set)

    def __post_init__(self) -> None:
        self.permits = asyncio.Semaphore(max(1, int(self.max_concurrency)))
        self.offer(self.base_url)

    def offer(self, url: str) -> bool:
        """Enqueue url unless it was already seen in this run."""
        if url in self.visited:
            return False
        self.visited.add(url)
        self.frontier.append(url)
        return True

    def task_done(self) -> None:
        self.permits.release()
        self.in_flight -= 1
        self.wakeup.set()


# -----------------------------
# CrawlEngine
# -----------------------------

class CrawlEngine:
    """
    Scoped BFS keyword crawl, one run per job.

    Termination: the run is finished when the frontier is empty and no task is
    in flight. Every task completion wakes the dispatch loop, which re-checks
    the frontier before deciding; a task may have enqueued links just before
    it finished.
    """

    def __init__(
        self,
        store: JobStore,
        fetcher: PageFetcher,
        *,
        max_concurrency: int = DEFAULT_MAX_CONCURRENCY,
    ) -> None:
        self.store = store
        self.fetcher = fetcher
        self.max_concurrency = int(max_concurrency)
        # page tasks of every run, including runs that were cancelled
        self._page_tasks: Set[asyncio.Task] = set()

    async def crawl(self, base_url: str, job_id: str) -> CrawlRunState:
        job = self.store.find_by_id(job_id)
        if job is None:
            raise KeyError(job_id)

        run = CrawlRunState(
            job_id=job_id,
            keyword=job.keyword,
            base_url=base_url,
            max_concurrency=self.max_concurrency,
        )
        logger.info("Starting crawl for job %s at %s", job_id, base_url)

        final_status = JobStatus.ERROR
        try:
            await self._dispatch(run)
            final_status = JobStatus.DONE
        except asyncio.CancelledError:
            logger.error("Crawl interrupted for job %s", job_id)
            raise
        except Exception:
            logger.exception("A critical error occurred during crawl for job %s", job_id)
        finally:
            self.store.change_status(job_id, final_status)
            logger.info(
                "Crawl finished for job %s (%s). Visited %d pages.",
                job_id, final_status.value.lower(), len(run.visited),
            )
        return run

    async def _dispatch(self, run: CrawlRunState) -> None:
        while True:
            if run.frontier:
                url = run.frontier.popleft()
                await run.permits.acquire()
                run.in_flight += 1
                task = asyncio.create_task(self._visit(run, url))
                run.tasks.add(task)
                task.add_done_callback(run.tasks.discard)
                self._page_tasks.add(task)
                task.add_done_callback(self._page_tasks.discard)
                continue

            if run.in_flight == 0:
                return

            run.wakeup.clear()
            await run.wakeup.wait()

    async def _visit(self, run: CrawlRunState, url: str) -> None:
        try:
            content = await self.fetcher.fetch(url)

            if contains_keyword(content, run.keyword):
                self.store.append_matches(run.job_id, [url])

            for link in self.fetcher.extract_links(content):
                next_url = self.fetcher.resolve(run.base_url, link)
                if is_valid(next_url) and is_in_scope(next_url, run.base_url):
                    run.offer(next_url)
        except FetchError as e:
            logger.warning("Could not process URL [job %s]: %s", run.job_id, e)
        except Exception:
            logger.exception("Unexpected error processing URL [job %s]: %s", run.job_id, url)
        finally:
            run.task_done()

    async def cancel_page_tasks(self) -> None:
        """Cancel page tasks still pending and wait until they have finished."""
        pending = [t for t in self._page_tasks if not t.done()]
        for t in pending:
            t.cancel()
        await asyncio.gather(*pending, return_exceptions=True)


# -----------------------------
# JobRunner
# -----------------------------

class JobRunner:
    """
    Bounded pool of crawl workers fed by a queue.

    At most `workers` crawls run at once; each crawl additionally caps its own
    fetches at the engine's max_concurrency, so process-wide fetch concurrency
    is bounded by workers * max_concurrency.
    """

    def __init__(self, engine: CrawlEngine, *, workers: int = DEFAULT_JOB_WORKERS) -> None:
        self.engine = engine
        self._workers_count = max(1, int(workers))
        self._queue: "asyncio.Queue[Tuple[str, str]]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []
        self._closing = False

    @property
    def running(self) -> bool:
        return bool(self._workers) and not self._closing

    def start(self) -> None:
        if self._workers:
            return
        for i in range(self._workers_count):
            self._workers.append(asyncio.create_task(self._job_worker_loop(), name=f"crawl-worker-{i}"))
        logger.info("Started %d crawl workers", self._workers_count)

    def submit(self, base_url: str, job_id: str) -> None:
        if self._closing:
            raise RuntimeError("JobRunner is shutting down")
        self._queue.put_nowait((base_url, job_id))

    async def _job_worker_loop(self) -> None:
        while True:
            base_url, job_id = await self._queue.get()
            try:
                await self.engine.crawl(base_url, job_id)
            except KeyError:
                logger.warning("Skipping unknown job %s", job_id)
            except Exception:
                logger.exception("Crawl worker failed for job %s", job_id)
            finally:
                self._queue.task_done()

    async def aclose(self, grace: Optional[float] = DEFAULT_SHUTDOWN_GRACE_S) -> None:
        """
        Stop accepting work, let queued and running crawls drain for up to
        `grace` seconds, then cancel what is left. Cancelled crawls end in
        ERROR and their page tasks are cancelled and awaited; queued jobs that
        never started are marked ERROR as well.
        """
        self._closing = True
        if not self._workers:
            self._abandon_queued()
            return

        logger.info("Shutting down crawl workers (grace %.1fs)...", grace or 0.0)
        try:
            await asyncio.wait_for(self._queue.join(), timeout=grace)
        except asyncio.TimeoutError:
            logger.warning("Crawl workers did not finish in time. Forcing shutdown...")

        for t in self._workers:
            t.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        await self.engine.cancel_page_tasks()
        self._abandon_queued()
        logger.info("Crawl workers have been shut down.")

    def _abandon_queued(self) -> None:
        while True:
            try:
                _base_url, job_id = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            self.engine.store.change_status(job_id, JobStatus.ERROR)
            self._queue.task_done()
