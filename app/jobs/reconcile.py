"""Re-queue transcode work for tracks stuck in `uploaded`.

Finalization commits the state change and the transcode job together, so
this only finds tracks whose job was lost some other way (manual edits,
restored backups, rows written by older code).
"""
from flask import current_app
from ..extensions import db
from ..models import Job, JobType, Track, TrackState
from . import queue
from .payloads import TrackPayload


def _tracks_with_transcode_job():
    rows = db.session.query(Job.payload).filter(Job.type == JobType.TRANSCODE).all()
    ids = set()
    for (payload,) in rows:
        try:
            ids.add(int((payload or {}).get('trackId')))
        except (TypeError, ValueError):
            continue
    return ids


def reconcile_uploaded_tracks():
    """Enqueue a transcode job for every uploaded track that has none. Returns track ids."""
    seen = _tracks_with_transcode_job()
    stuck = (
        Track.query
        .filter(Track.state == TrackState.UPLOADED, Track.storage_key_raw.isnot(None))
        .order_by(Track.id.asc())
        .all()
    )
    queued = []
    for track in stuck:
        if track.id in seen:
            continue
        queue.enqueue(JobType.TRANSCODE, track.recording_id, TrackPayload(track.id), commit=False)
        queued.append(track.id)
    db.session.commit()
    if queued:
        current_app.logger.warning('reconciler queued transcode for tracks %s', queued)
    return queued
