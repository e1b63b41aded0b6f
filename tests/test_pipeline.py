import os

import pytest

from conftest import make_track

from app.errors import ToolFailure
from app.extensions import db
from app.jobs import queue
from app.jobs.asr import run_asr
from app.jobs.payloads import TrackPayload
from app.jobs.reconcile import reconcile_uploaded_tracks
from app.jobs.transcode import run_transcode
from app.jobs.worker import Worker
from app.models import Job, JobState, JobType, Track, TrackState, TranscriptSegment
from app.services import asr, storage

AUDIO_PROBE = {
    'streams': [{'codec_type': 'audio', 'codec_name': 'opus', 'duration': '12.5'}],
    'format': {'duration': '12.5'},
}
VIDEO_PROBE = {
    'streams': [
        {'codec_type': 'video', 'codec_name': 'vp8'},
        {'codec_type': 'audio', 'codec_name': 'opus'},
    ],
    'format': {'duration': 'N/A'},
}


@pytest.fixture
def fake_ffmpeg(monkeypatch):
    calls = []

    def fake_transcode(kind):
        def run(src, out):
            calls.append((kind, src))
            with open(out, 'wb') as f:
                f.write(kind.encode())
            return out
        return run

    monkeypatch.setattr('app.services.media.transcode_audio', fake_transcode('audio'))
    monkeypatch.setattr('app.services.media.transcode_video', fake_transcode('video'))
    return calls


def _uploaded_track(recording, kind='audio'):
    track = make_track(recording, kind=kind)
    key = storage.resumable_raw_key(recording.id, track.id, 1)
    path = storage.media_path(key)
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, 'wb') as f:
        f.write(b'raw')
    track.storage_key_raw = key
    track.advance_to(TrackState.UPLOADED)
    queue.enqueue(JobType.TRANSCODE, recording.id, TrackPayload(track.id), commit=False)
    db.session.commit()
    return track


def test_transcode_then_asr(app, recording, monkeypatch, fake_ffmpeg):
    monkeypatch.setattr('app.services.media.probe', lambda path: AUDIO_PROBE)
    track = _uploaded_track(recording)

    assert Worker(JobType.TRANSCODE, run_transcode).run_once() is True

    db.session.expire_all()
    track = db.session.get(Track, track.id)
    assert track.state == TrackState.PROCESSED
    assert track.storage_key_final == f"recordings/{recording.id}/tracks/{track.id}/final/{track.id}.wav"
    assert track.codec == 'opus'
    assert track.duration_ms == 12500
    assert track.processed_at is not None
    assert os.path.exists(os.path.join(app.config['LOCAL_STORAGE_DIR'], track.storage_key_final))
    assert fake_ffmpeg[0][0] == 'audio'

    asr_jobs = Job.query.filter_by(type=JobType.ASR).all()
    assert [j.payload for j in asr_jobs] == [{'trackId': track.id}]

    assert Worker(JobType.ASR, run_asr).run_once() is True
    segments = TranscriptSegment.query.filter_by(track_id=track.id).order_by(TranscriptSegment.start_ms).all()
    assert [(s.start_ms, s.end_ms) for s in segments] == [(0, 5000), (5000, 12500)]
    assert db.session.get(Job, asr_jobs[0].id).state == JobState.SUCCEEDED


def test_video_track_becomes_mp4(app, recording, monkeypatch, fake_ffmpeg):
    monkeypatch.setattr('app.services.media.probe', lambda path: VIDEO_PROBE)
    track = _uploaded_track(recording, kind='video')

    job = queue.claim_next(JobType.TRANSCODE)
    run_transcode(job, TrackPayload(track.id))

    track = db.session.get(Track, track.id)
    assert track.storage_key_final.endswith(f"/final/{track.id}.mp4")
    assert track.codec == 'vp8'
    assert track.duration_ms is None
    assert fake_ffmpeg[0][0] == 'video'


def test_transcode_rerun_is_a_no_op(app, recording, monkeypatch, fake_ffmpeg):
    monkeypatch.setattr('app.services.media.probe', lambda path: AUDIO_PROBE)
    track = _uploaded_track(recording)
    run_transcode(None, TrackPayload(track.id))
    run_transcode(None, TrackPayload(track.id))
    assert len(fake_ffmpeg) == 1
    assert Job.query.filter_by(type=JobType.ASR).count() == 1


def test_transcode_failure_keeps_track_uploaded(app, recording, monkeypatch):
    def broken_probe(path):
        raise ToolFailure('ffprobe failed (rc=1): invalid data')

    monkeypatch.setattr('app.services.media.probe', broken_probe)
    track = _uploaded_track(recording)
    Worker(JobType.TRANSCODE, run_transcode).run_once()

    db.session.expire_all()
    assert db.session.get(Track, track.id).state == TrackState.UPLOADED
    job = Job.query.filter_by(type=JobType.TRANSCODE).one()
    assert job.state == JobState.QUEUED
    assert job.last_error.startswith('tool_failure: ffprobe failed')


def test_missing_track_is_dead(app, recording):
    queue.enqueue(JobType.TRANSCODE, recording.id, TrackPayload(999))
    Worker(JobType.TRANSCODE, run_transcode).run_once()
    job = Job.query.one()
    assert job.state == JobState.DEAD


def test_asr_rerun_replaces_segments(app, recording, monkeypatch):
    track = make_track(recording, state=TrackState.PROCESSED, raw='r.bin', final='f.wav')
    track.duration_ms = 8000
    db.session.commit()

    run_asr(None, TrackPayload(track.id))
    monkeypatch.setattr('app.services.asr._placeholder',
                        lambda duration_ms: [asr.Segment(0, 1000, 'only one')])
    run_asr(None, TrackPayload(track.id))

    segments = TranscriptSegment.query.filter_by(track_id=track.id).all()
    assert [s.text for s in segments] == ['only one']


def test_normalize_segments_orders_and_clips():
    out = asr.normalize_segments([
        asr.Segment(4000, 6000, 'second'),
        asr.Segment(0, 4500, 'first '),
        asr.Segment(7000, 8000, '   '),
    ])
    assert [(s.start_ms, s.end_ms, s.text) for s in out] == [(0, 4500, 'first'), (4500, 6000, 'second')]


def test_segments_from_deepgram(app):
    raw = {'results': {'utterances': [
        {'start': 0.0, 'end': 1.2, 'transcript': 'hello there', 'speaker': 0, 'confidence': 0.9},
        {'start': 1.5, 'end': 2.0, 'transcript': 'hi', 'speaker': 1},
    ]}}
    segs = asr.segments_from_deepgram(raw)
    assert [(s.start_ms, s.end_ms, s.speaker) for s in segs] == [(0, 1200, '0'), (1500, 2000, '1')]

    words = {'results': {'channels': [{'alternatives': [{'words': [
        {'word': 'a', 'start': 0.0, 'end': 0.2, 'speaker': 0},
        {'word': 'b', 'start': 0.3, 'end': 0.5, 'speaker': 0},
        {'word': 'c', 'start': 2.0, 'end': 2.4, 'speaker': 0},
    ]}]}]}}
    segs = asr.segments_from_deepgram(words)
    assert [(s.text, s.start_ms, s.end_ms) for s in segs] == [('a b', 0, 500), ('c', 2000, 2400)]


def test_reconciler_requeues_orphans(app, recording):
    orphan = make_track(recording, state=TrackState.UPLOADED, raw='recordings/1/raw.bin')
    covered = _uploaded_track(recording)

    assert reconcile_uploaded_tracks() == [orphan.id]
    assert reconcile_uploaded_tracks() == []
    payloads = sorted(j.payload['trackId'] for j in Job.query.filter_by(type=JobType.TRANSCODE))
    assert payloads == sorted([orphan.id, covered.id])
