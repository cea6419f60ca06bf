from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import as_completed
from dataclasses import dataclass
from s3_deploy.config import DEFAULT_MAX_CONCURRENCY
from s3_deploy.runner import SyncCancelledError

import logging
import threading


logger = logging.getLogger(__name__)


class JobFailedError(Exception):
    """The first job of a run that failed, with its cause chained."""

    def __init__(self, job, cause):
        self.job = job
        super().__init__(
            f"failed to {job.action.value} {job.local} to {job.remote}: {cause}"
        )


@dataclass(frozen=True)
class Result:
    job: object
    error: BaseException = None
    value: object = None

    @property
    def ok(self):
        return self.error is None


class JobScheduler:
    """Runs a plan with at most ``max_concurrency`` jobs in flight.

    Sync jobs run concurrently and in no particular order. The plan's
    invalidation job runs afterwards, on the calling thread, and only if
    every sync job succeeded. After the first failure, jobs that have not
    started yet are skipped; all results are still collected before the
    failure is raised as JobFailedError.
    """

    def __init__(self, runner, max_concurrency=DEFAULT_MAX_CONCURRENCY):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        self._runner = runner
        self.max_concurrency = max_concurrency

    def run(self, plan, cancel=None):
        """Execute plan; return the list of results or raise JobFailedError.

        ``cancel`` is an optional threading.Event. Once set, jobs that
        have not started fail with SyncCancelledError, and running jobs
        stop before their next remote call.
        """
        cancel = cancel or threading.Event()
        abort = threading.Event()

        def is_cancelled():
            return cancel.is_set() or abort.is_set()

        results = self._run_concurrently(plan.jobs, is_cancelled, abort)
        for result in results:
            if not result.ok:
                raise JobFailedError(result.job, result.error) from result.error

        if plan.invalidation is not None:
            result = self._execute(plan.invalidation, is_cancelled)
            if not result.ok:
                raise JobFailedError(result.job, result.error) from result.error
            results.append(result)
        return results

    def _run_concurrently(self, jobs, is_cancelled, abort):
        results = []
        if not jobs:
            return results
        pool = ThreadPoolExecutor(
            max_workers=min(self.max_concurrency, len(jobs)),
            thread_name_prefix="s3-deploy",
        )
        try:
            futures = [pool.submit(self._execute, job, is_cancelled) for job in jobs]
            for future in as_completed(futures):
                result = future.result()
                if not result.ok and not abort.is_set():
                    logger.debug("job %s failed, skipping pending jobs", result.job)
                    abort.set()
                results.append(result)
        except BaseException:
            abort.set()
            pool.shutdown(wait=True, cancel_futures=True)
            raise
        pool.shutdown(wait=True)
        return results

    def _execute(self, job, is_cancelled):
        if is_cancelled():
            return Result(job, error=SyncCancelledError("synchronization cancelled"))
        try:
            value = self._runner.run(job, is_cancelled)
        except Exception as e:
            return Result(job, error=e)
        return Result(job, value=value)
