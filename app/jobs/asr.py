from flask import current_app

from ..extensions import db
from ..errors import NotFound
from ..models import Track, TranscriptSegment
from ..services import asr
from .payloads import TrackPayload


def run_asr(job, payload: TrackPayload):
    track = db.session.get(Track, payload.track_id)
    if track is None or not track.storage_key_final:
        raise NotFound('track_not_found_or_no_final', details={'trackId': payload.track_id})

    segments = asr.transcribe(track.storage_key_final, track.duration_ms)

    # re-runs replace the previous transcript for this track
    TranscriptSegment.query.filter_by(
        recording_id=track.recording_id, track_id=track.id,
    ).delete(synchronize_session=False)
    db.session.add_all([
        TranscriptSegment(
            recording_id=track.recording_id,
            track_id=track.id,
            start_ms=seg.start_ms,
            end_ms=seg.end_ms,
            text=seg.text,
            speaker=seg.speaker,
            confidence=seg.confidence,
        )
        for seg in segments
    ])
    db.session.commit()
    current_app.logger.info('stored %s transcript segments for track %s', len(segments), track.id)
