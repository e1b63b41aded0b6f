from ..models.transcript import TranscriptSegment


def list_segments(recording_id, track_id=None):
    q = TranscriptSegment.query.filter_by(recording_id=recording_id)
    if track_id is not None:
        q = q.filter_by(track_id=track_id)
    return q.order_by(TranscriptSegment.track_id.asc(), TranscriptSegment.start_ms.asc()).all()
