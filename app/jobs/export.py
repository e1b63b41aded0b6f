from flask import current_app

from ..extensions import db
from ..errors import BadPayload, NotFound, format_error
from ..models import (
    ExportArtifact, ExportState, ExportType, JobState, Track, TrackKind, TrackState,
)
from ..services.captions import render_captioned_export
from .payloads import ExportPayload, decode_payload


def pick_source_track(recording_id, export_type):
    """Most recently processed track of the wanted kind, else any processed track."""
    tracks = (
        Track.query
        .filter(Track.recording_id == recording_id,
                Track.state == TrackState.PROCESSED,
                Track.storage_key_final.isnot(None))
        .order_by(Track.processed_at.desc(), Track.id.desc())
        .all()
    )
    if not tracks:
        return None
    wanted = TrackKind.AUDIO if export_type == ExportType.WAV else TrackKind.VIDEO
    for t in tracks:
        if t.kind == wanted:
            return t
    return tracks[0]


def run_export(job, payload: ExportPayload):
    artifact = db.session.get(ExportArtifact, payload.export_id)
    if artifact is None:
        raise NotFound('export_not_found', details={'exportId': payload.export_id})

    if artifact.state == ExportState.SUCCEEDED and artifact.storage_key:
        return

    artifact.state = ExportState.RUNNING
    artifact.last_error = None
    db.session.commit()

    source = pick_source_track(artifact.recording_id, artifact.type)
    if source is None:
        raise NotFound('no_processed_tracks_for_export', details={'recordingId': artifact.recording_id})

    if artifact.type == ExportType.MP4_CAPTIONS:
        key = render_captioned_export(artifact, source.storage_key_final)
    else:
        key = source.storage_key_final

    artifact.storage_key = key
    artifact.state = ExportState.SUCCEEDED
    artifact.last_error = None
    db.session.commit()
    current_app.logger.info('export %s succeeded: %s', artifact.id, key)


def on_export_failure(job, error, job_state):
    """Mirror the job failure on the artifact so clients need not read the job table.

    While the job still has retries left the artifact goes back to `queued`
    (it stays active, so a new request does not create a duplicate).
    """
    try:
        payload = decode_payload(job.type, job.payload)
    except BadPayload:
        # no artifact can be identified
        return
    artifact = db.session.get(ExportArtifact, payload.export_id)
    if artifact is None:
        return
    cap = current_app.config.get('JOB_ERROR_MAX_CHARS', 8000)
    artifact.last_error = format_error(error)[:cap]
    artifact.state = ExportState.QUEUED if job_state == JobState.QUEUED else ExportState.FAILED
    db.session.commit()
