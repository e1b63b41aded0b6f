"""Generic poll -> claim -> execute -> resolve loop.

One `Worker` serves one job type. Several workers of the same type may run
in parallel threads or processes; exclusivity comes from `claim_next`.
Stopping is cooperative: the stop event is checked between iterations and
during the idle sleep, never in the middle of a job.
"""
import threading
from typing import Callable, Optional

from flask import current_app

from ..extensions import db
from ..models.job import Job, JobState, JobType
from . import queue
from .payloads import decode_payload


class Worker:
    def __init__(
        self,
        job_type: str,
        handler: Callable,
        stop_event: Optional[threading.Event] = None,
        on_failure: Optional[Callable] = None,
        poll_interval: Optional[float] = None,
        name: Optional[str] = None,
    ):
        if job_type not in JobType.ALL:
            raise ValueError(f"unknown job type {job_type!r}")
        self.job_type = job_type
        self.handler = handler
        self.on_failure = on_failure
        self.stop_event = stop_event or threading.Event()
        self._poll_interval = poll_interval
        self.name = name or f"{job_type}-worker"

    @property
    def poll_interval(self) -> float:
        if self._poll_interval is not None:
            return self._poll_interval
        return current_app.config.get('WORKER_POLL_INTERVAL', 1.5)

    def run_once(self) -> bool:
        """Process at most one job. Returns True when a job was claimed."""
        log = current_app.logger
        try:
            job = queue.claim_next(self.job_type)
        except Exception:
            log.exception('[%s] loop error while claiming', self.name)
            db.session.rollback()
            return False
        if job is None:
            return False

        log.info('[%s] running job %s (attempt %s)', self.name, job.id, job.attempts)
        try:
            payload = decode_payload(job.type, job.payload)
            self.handler(job, payload)
        except Exception as e:
            log.exception('[%s] job %s failed', self.name, job.id)
            db.session.rollback()
            self._fail(job, e)
            return True

        try:
            queue.mark_succeeded(job.id)
            log.info('[%s] job %s succeeded', self.name, job.id)
        except Exception:
            # job stays `running`; an operator can requeue it
            log.exception('[%s] could not record success for job %s', self.name, job.id)
            db.session.rollback()
        return True

    def _fail(self, job: Job, error):
        try:
            state = queue.mark_failed(job, error)
        except Exception:
            current_app.logger.exception('[%s] could not record failure for job %s', self.name, job.id)
            db.session.rollback()
            return
        if state != JobState.QUEUED:
            current_app.logger.warning('[%s] job %s is %s after %s attempts', self.name, job.id, state, job.attempts)
        if self.on_failure is None:
            return
        try:
            self.on_failure(job, error, state)
        except Exception:
            current_app.logger.exception('[%s] failure hook raised for job %s', self.name, job.id)
            db.session.rollback()

    def run(self):
        """Loop until the stop event is set."""
        current_app.logger.info('[%s] starting', self.name)
        while not self.stop_event.is_set():
            worked = self.run_once()
            # drop identity map between jobs; long-lived loops must not see stale rows
            db.session.remove()
            if not worked:
                self.stop_event.wait(self.poll_interval)
        current_app.logger.info('[%s] stopping', self.name)


def build_workers(stop_event: threading.Event, job_types=None):
    """Return one configured Worker per requested job type."""
    from .asr import run_asr
    from .export import on_export_failure, run_export
    from .transcode import run_transcode

    handlers = {
        JobType.TRANSCODE: (run_transcode, None),
        JobType.ASR: (run_asr, None),
        JobType.EXPORT: (run_export, on_export_failure),
    }
    if job_types is None:
        raw = current_app.config.get('WORKER_TYPES', ','.join(JobType.ALL))
        job_types = [t.strip() for t in raw.split(',') if t.strip()]

    workers = []
    for job_type in job_types:
        handler, on_failure = handlers[job_type]
        workers.append(Worker(job_type, handler, stop_event=stop_event, on_failure=on_failure))
    return workers
