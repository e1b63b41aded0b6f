from ..extensions import db
from .base import utcnow


class JobType:
    TRANSCODE = 'transcode'
    ASR = 'asr'
    EXPORT = 'export'
    ALL = (TRANSCODE, ASR, EXPORT)


class JobState:
    QUEUED = 'queued'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    DEAD = 'dead'
    TERMINAL = (SUCCEEDED, FAILED, DEAD)


class Job(db.Model):
    __tablename__ = "jobs"
    id = db.Column(db.Integer, primary_key=True)
    recording_id = db.Column(db.Integer, db.ForeignKey("recordings.id"), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    payload = db.Column(db.JSON)
    state = db.Column(db.String(20), nullable=False, default=JobState.QUEUED, index=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_error = db.Column(db.Text)
    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    started_at = db.Column(db.DateTime)
    finished_at = db.Column(db.DateTime)

    def to_dict(self):
        return {
            'id': self.id,
            'recordingId': self.recording_id,
            'type': self.type,
            'payload': self.payload,
            'state': self.state,
            'attempts': self.attempts,
            'lastError': self.last_error,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'finishedAt': self.finished_at.isoformat() if self.finished_at else None,
        }
