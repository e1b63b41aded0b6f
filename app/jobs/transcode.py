import os
import tempfile

from flask import current_app

from ..extensions import db
from ..errors import NotFound
from ..models import JobType, Track, TrackState, UploadProtocol
from ..models.base import utcnow
from ..services import media, storage
from . import queue
from .payloads import TrackPayload


def _raw_source(track):
    upload = track.upload
    if upload is not None and upload.protocol == UploadProtocol.MULTIPART:
        return storage.BACKEND_S3, upload.storage_bucket
    return 'media', None


def run_transcode(job, payload: TrackPayload):
    track = db.session.get(Track, payload.track_id)
    if track is None or not track.storage_key_raw:
        raise NotFound('track_not_found_or_no_raw', details={'trackId': payload.track_id})

    if track.state == TrackState.PROCESSED and track.storage_key_final:
        # finished by an earlier attempt; ASR was queued in the same commit
        current_app.logger.info('track %s already processed; nothing to do', track.id)
        return

    source, bucket = _raw_source(track)
    with storage.local_copy(track.storage_key_raw, source=source, bucket=bucket) as raw_path:
        info = media.probe(raw_path)
        audio_only = media.is_audio_only(info)
        ext, content_type = ('wav', 'audio/wav') if audio_only else ('mp4', 'video/mp4')
        key = storage.final_key(track.recording_id, track.id, ext)

        with tempfile.TemporaryDirectory(prefix='transcode-') as workdir:
            out_path = os.path.join(workdir, f"{track.id}.{ext}")
            if audio_only:
                media.transcode_audio(raw_path, out_path)
            else:
                media.transcode_video(raw_path, out_path)
            storage.upload_final(out_path, key, content_type)

    duration = media.duration_seconds(info)
    track.storage_key_final = key
    track.codec = media.primary_codec(info)
    track.duration_ms = int(round(duration * 1000)) if duration is not None else None
    track.processed_at = utcnow()
    track.advance_to(TrackState.PROCESSED)
    queue.enqueue(JobType.ASR, track.recording_id, TrackPayload(track.id), commit=False)
    db.session.commit()
    current_app.logger.info('track %s transcoded to %s (%s ms)', track.id, key, track.duration_ms)
