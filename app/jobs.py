from __future__ import annotations

import logging
import random
import secrets
import string
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

logger = logging.getLogger(__name__)


ID_LENGTH: int = 8
ID_ALPHABET: str = string.ascii_uppercase + string.ascii_lowercase + string.digits


class JobStatus(str, Enum):
    ACTIVE = "ACTIVE"
    DONE = "DONE"
    ERROR = "ERROR"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.ACTIVE


@dataclass(frozen=True)
class JobSnapshot:
    """Read-only copy of a job handed out to callers."""

    job_id: str
    keyword: str
    status: JobStatus
    matches: FrozenSet[str]
    started_at: float
    last_updated_at: float


@dataclass
class JobRecord:
    """
    Canonical state of one crawl job. Owned by JobStore.

    Status and matches share a single lock so that "append only while ACTIVE"
    and "ERROR is never overwritten by DONE" hold under any interleaving.
    """

    job_id: str
    keyword: str
    status: JobStatus = JobStatus.ACTIVE
    matches: Set[str] = field(default_factory=set)
    started_at: float = field(default_factory=time.time)
    last_updated_at: float = 0.0

    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.last_updated_at:
            self.last_updated_at = self.started_at

    def add_matches(self, urls: Iterable[str]) -> bool:
        with self._lock:
            if self.status is not JobStatus.ACTIVE:
                return False
            self.matches.update(urls)
            self.last_updated_at = time.time()
            return True

    def transition(self, status: JobStatus) -> bool:
        """Apply a terminal transition; terminal states are sticky."""
        with self._lock:
            if self.status is not JobStatus.ACTIVE:
                return False
            self.status = status
            self.last_updated_at = time.time()
            return True

    def snapshot(self) -> JobSnapshot:
        with self._lock:
            return JobSnapshot(
                job_id=self.job_id,
                keyword=self.keyword,
                status=self.status,
                matches=frozenset(self.matches),
                started_at=self.started_at,
                last_updated_at=self.last_updated_at,
            )


def _generate_job_id(length: int = ID_LENGTH) -> str:
    try:
        rng: random.Random = secrets.SystemRandom()
        return "".join(rng.choice(ID_ALPHABET) for _ in range(length))
    except NotImplementedError:
        logger.warning(
            "OS randomness source unavailable, falling back to random.Random for job ids. "
            "This is not recommended for production."
        )
        rng = random.Random()
        return "".join(rng.choice(ID_ALPHABET) for _ in range(length))


class JobStore:
    """
    In-memory, thread-safe job registry.
    Public API:
      - create(keyword)
      - find_by_id(job_id)
      - find_all()
      - append_matches(job_id, urls)
      - change_status(job_id, status)

    Records never leave the store; every read returns a JobSnapshot.
    Identifier collisions are not checked (62**8 possible ids).
    """

    def __init__(self) -> None:
        self._jobs: Dict[str, JobRecord] = {}
        self._jobs_lock = threading.Lock()

    def __len__(self) -> int:
        with self._jobs_lock:
            return len(self._jobs)

    def _get(self, job_id: str) -> Optional[JobRecord]:
        with self._jobs_lock:
            return self._jobs.get(job_id)

    def create(self, keyword: str) -> JobSnapshot:
        rec = JobRecord(job_id=_generate_job_id(), keyword=keyword)
        with self._jobs_lock:
            self._jobs[rec.job_id] = rec
            total = len(self._jobs)
        logger.info("Created job %s. Total jobs: %d", rec.job_id, total)
        return rec.snapshot()

    def find_by_id(self, job_id: str) -> Optional[JobSnapshot]:
        rec = self._get(job_id)
        return rec.snapshot() if rec else None

    def find_all(self) -> List[JobSnapshot]:
        with self._jobs_lock:
            records = list(self._jobs.values())
        return [rec.snapshot() for rec in records]

    def append_matches(self, job_id: str, urls: Iterable[str]) -> None:
        rec = self._get(job_id)
        if rec:
            rec.add_matches(urls)

    def change_status(self, job_id: str, status: JobStatus) -> None:
        if not status.is_terminal:
            raise ValueError(f"Invalid status transition target: {status.value}")
        rec = self._get(job_id)
        if rec and rec.transition(status):
            logger.info("Job %s is now %s", job_id, status.value)
