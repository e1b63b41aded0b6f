import threading

from app.errors import StorageFailure
from app.extensions import db
from app.jobs import queue
from app.jobs.payloads import TrackPayload
from app.jobs.worker import Worker, build_workers
from app.models import Job, JobState, JobType


def _job(job_id):
    db.session.expire_all()
    return db.session.get(Job, job_id)


def test_successful_job_is_marked_succeeded(app, recording):
    seen = []
    job = queue.enqueue(JobType.ASR, recording.id, TrackPayload(5))
    worker = Worker(JobType.ASR, lambda j, p: seen.append(p))

    assert worker.run_once() is True
    assert seen == [TrackPayload(5)]
    row = _job(job.id)
    assert row.state == JobState.SUCCEEDED
    assert row.attempts == 1
    assert worker.run_once() is False


def test_retry_is_bounded(app, recording):
    def always_fails(job, payload):
        raise StorageFailure('object store down')

    job = queue.enqueue(JobType.TRANSCODE, recording.id, TrackPayload(1))
    worker = Worker(JobType.TRANSCODE, always_fails)
    for _ in range(3):
        assert worker.run_once() is True
    assert worker.run_once() is False

    row = _job(job.id)
    assert row.state == JobState.FAILED
    assert row.attempts == 3
    assert row.last_error.startswith('storage_failure:')


def test_bad_payload_goes_dead(app, recording):
    calls = []
    bad = Job(recording_id=recording.id, type=JobType.TRANSCODE, payload={'track': 1})
    db.session.add(bad)
    db.session.commit()

    worker = Worker(JobType.TRANSCODE, lambda j, p: calls.append(p))
    assert worker.run_once() is True
    assert calls == []
    row = _job(bad.id)
    assert row.state == JobState.DEAD
    assert row.attempts == 1
    assert row.last_error.startswith('bad_payload:')


def test_claim_errors_do_not_stop_the_loop(app, recording, monkeypatch):
    real_claim = queue.claim_next
    calls = {'n': 0}

    def flaky_claim(job_type):
        calls['n'] += 1
        if calls['n'] == 1:
            raise RuntimeError('db went away')
        return real_claim(job_type)

    monkeypatch.setattr('app.jobs.queue.claim_next', flaky_claim)
    job = queue.enqueue(JobType.ASR, recording.id, TrackPayload(1))
    worker = Worker(JobType.ASR, lambda j, p: None)

    assert worker.run_once() is False
    assert worker.run_once() is True
    assert _job(job.id).state == JobState.SUCCEEDED


def test_failure_hook_receives_new_state(app, recording):
    hooked = []

    def boom(job, payload):
        raise RuntimeError('nope')

    queue.enqueue(JobType.ASR, recording.id, TrackPayload(1))
    worker = Worker(JobType.ASR, boom, on_failure=lambda j, e, s: hooked.append((str(e), s)))
    worker.run_once()
    assert hooked == [('nope', JobState.QUEUED)]


def test_run_exits_when_stop_is_set(app, recording):
    stop = threading.Event()
    processed = []

    def handler(job, payload):
        processed.append(payload.track_id)
        if len(processed) == 2:
            stop.set()

    for i in range(3):
        queue.enqueue(JobType.ASR, recording.id, TrackPayload(i))
    Worker(JobType.ASR, handler, stop_event=stop).run()

    assert processed == [0, 1]
    assert queue.claim_next(JobType.ASR) is not None


def test_run_returns_immediately_when_already_stopped(app):
    stop = threading.Event()
    stop.set()
    calls = []
    Worker(JobType.EXPORT, lambda j, p: calls.append(j), stop_event=stop).run()
    assert calls == []


def test_build_workers_respects_requested_types(app):
    stop = threading.Event()
    workers = build_workers(stop, job_types=['asr', 'export'])
    assert [w.job_type for w in workers] == ['asr', 'export']
    assert all(w.stop_event is stop for w in workers)
    assert workers[1].on_failure is not None

    assert [w.job_type for w in build_workers(stop)] == ['transcode', 'asr', 'export']
