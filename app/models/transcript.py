from ..extensions import db
from .base import utcnow


class TranscriptSegment(db.Model):
    __tablename__ = "transcript_segments"
    id = db.Column(db.Integer, primary_key=True)
    recording_id = db.Column(db.Integer, db.ForeignKey("recordings.id"), nullable=False, index=True)
    track_id = db.Column(db.Integer, db.ForeignKey("tracks.id"), index=True)
    start_ms = db.Column(db.Integer, nullable=False)
    end_ms = db.Column(db.Integer, nullable=False)
    text = db.Column(db.Text, nullable=False)
    speaker = db.Column(db.String(64))
    confidence = db.Column(db.Float)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)

    def to_dict(self):
        return {
            'trackId': self.track_id,
            'startMs': self.start_ms,
            'endMs': self.end_ms,
            'text': self.text,
            'speaker': self.speaker,
            'confidence': self.confidence,
        }
