import asyncio
import base64
import time
import uuid
from typing import Callable, Dict, Optional

from app.models import Job
from app.utils.logging import get_logger


logger = get_logger(__name__)


def generate_job_id() -> str:
    """128 random bits, base64url without padding (22 chars)."""
    return base64.urlsafe_b64encode(uuid.uuid4().bytes).rstrip(b"=").decode("ascii")


class JobStore:
    """In-memory TTL registry of resolved jobs.

    All methods are single dict operations with no awaits, so they are atomic
    with respect to other coroutines on the same event loop. The periodic
    sweep runs as an asyncio task owned by the store (``start``/``stop``).
    """

    def __init__(
        self,
        ttl: float = 600.0,
        sweep_interval: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl
        self.sweep_interval = sweep_interval
        self.clock = clock
        self._jobs: Dict[str, Job] = {}
        self._task: Optional[asyncio.Task] = None

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: object) -> bool:
        return isinstance(job_id, str) and self.get(job_id) is not None

    def _expired(self, job: Job, now: float) -> bool:
        return now - job.created_at > self.ttl

    def new_id(self) -> str:
        job_id = generate_job_id()
        while job_id in self._jobs:
            job_id = generate_job_id()
        return job_id

    def put(self, job: Job) -> None:
        self._jobs[job.id] = job

    def get(self, job_id: str) -> Optional[Job]:
        job = self._jobs.get(job_id)
        if job is None or self._expired(job, self.clock()):
            return None
        return job

    def replace(self, job: Job) -> bool:
        """Swap in an updated record; does nothing if the job is gone."""
        if self.get(job.id) is None:
            return False
        self._jobs[job.id] = job
        return True

    def sweep(self) -> int:
        now = self.clock()
        expired = [job_id for job_id, job in self._jobs.items() if self._expired(job, now)]
        for job_id in expired:
            self._jobs.pop(job_id, None)
        if expired:
            logger.info("swept %d expired job(s), %d live", len(expired), len(self._jobs))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                self.sweep()
            except Exception:  # noqa: BLE001
                logger.exception("job sweep failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._sweep_loop(), name="job-store-sweep")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
