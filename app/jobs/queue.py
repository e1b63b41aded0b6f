"""Durable job table: enqueue, atomic claim, resolution.

Correctness under several worker processes rests on `claim_next` alone: the
row is selected (locked with SKIP LOCKED where the database supports it) and
then flipped with a conditional UPDATE that only matches while the row is
still `queued`. Whoever gets rowcount == 1 owns the job.
"""
from flask import current_app
from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import DbFailure, format_error
from ..models.base import utcnow
from ..models.job import Job, JobState, JobType
from .payloads import encode_payload


def enqueue(job_type: str, recording_id: int, payload, commit: bool = True) -> Job:
    """Insert a queued job. With commit=False the caller owns the transaction."""
    if job_type not in JobType.ALL:
        raise ValueError(f"unknown job type {job_type!r}")
    job = Job(
        recording_id=recording_id,
        type=job_type,
        payload=encode_payload(job_type, payload),
        state=JobState.QUEUED,
        attempts=0,
    )
    db.session.add(job)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return job


def claim_next(job_type: str):
    """Claim the oldest queued job of `job_type`, or return None when none is queued.

    A lost race means another claimer took that row, so the select runs again
    until it wins a row or finds the queue empty.
    """
    pick = (
        select(Job.id)
        .where(Job.type == job_type, Job.state == JobState.QUEUED)
        .order_by(Job.created_at.asc(), Job.id.asc())
        .limit(1)
        .with_for_update(skip_locked=True)
    )
    try:
        while True:
            job_id = db.session.execute(pick).scalar_one_or_none()
            if job_id is None:
                db.session.rollback()
                return None

            result = db.session.execute(
                update(Job)
                .where(Job.id == job_id, Job.state == JobState.QUEUED)
                .values(state=JobState.RUNNING, attempts=Job.attempts + 1, started_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                db.session.commit()
                return db.session.get(Job, job_id, populate_existing=True)
            # someone else won this row; look again
            db.session.rollback()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DbFailure(f"claim failed for {job_type}: {e}") from e


def _resolve(job_id: int, **values) -> bool:
    result = db.session.execute(
        update(Job)
        .where(Job.id == job_id, Job.state == JobState.RUNNING)
        .values(finished_at=utcnow(), **values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    return result.rowcount == 1


def mark_succeeded(job_id: int) -> bool:
    return _resolve(job_id, state=JobState.SUCCEEDED, last_error=None)


def next_state_after_failure(job: Job, error, max_attempts: int = None) -> str:
    if max_attempts is None:
        max_attempts = current_app.config.get('JOB_MAX_ATTEMPTS', 3)
    if getattr(error, 'permanent', False):
        return JobState.DEAD
    if job.attempts < max_attempts:
        return JobState.QUEUED
    return JobState.FAILED


def mark_failed(job: Job, error, max_attempts: int = None) -> str:
    """Record a failed attempt and return the state the job moved to.

    Retryable errors go back to `queued` until attempts reach the bound, then
    `failed`. Permanent errors (`bad_payload`, `not_found`) go to `dead` on
    the first attempt.
    """
    state = next_state_after_failure(job, error, max_attempts)
    cap = current_app.config.get('JOB_ERROR_MAX_CHARS', 8000)
    values = {'state': state, 'last_error': format_error(error)[:cap]}
    result = db.session.execute(
        update(Job)
        .where(Job.id == job.id, Job.state == JobState.RUNNING)
        .values(finished_at=utcnow() if state in JobState.TERMINAL else None, **values)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    if result.rowcount != 1:
        current_app.logger.warning('job %s was not running; failure not recorded', job.id)
    return state


def get_job(job_id: int):
    return db.session.get(Job, job_id)


def list_jobs_for_recording(recording_id: int, job_type: str = None):
    q = Job.query.filter_by(recording_id=recording_id)
    if job_type:
        q = q.filter_by(type=job_type)
    return q.order_by(Job.created_at.asc(), Job.id.asc()).all()
