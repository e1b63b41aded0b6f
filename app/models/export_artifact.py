from ..extensions import db
from .base import TimestampMixin


class ExportType:
    WAV = 'wav'
    MP4 = 'mp4'
    MP4_CAPTIONS = 'mp4_captions'
    ALL = (WAV, MP4, MP4_CAPTIONS)


class ExportState:
    QUEUED = 'queued'
    RUNNING = 'running'
    SUCCEEDED = 'succeeded'
    FAILED = 'failed'
    ACTIVE = (QUEUED, RUNNING, SUCCEEDED)


class ExportArtifact(db.Model, TimestampMixin):
    __tablename__ = "export_artifacts"
    id = db.Column(db.Integer, primary_key=True)
    recording_id = db.Column(db.Integer, db.ForeignKey("recordings.id"), nullable=False, index=True)
    type = db.Column(db.String(20), nullable=False)
    state = db.Column(db.String(20), nullable=False, default=ExportState.QUEUED)
    storage_key = db.Column(db.String(512))
    last_error = db.Column(db.Text)

    def to_dict(self):
        return {
            'id': self.id,
            'recordingId': self.recording_id,
            'type': self.type,
            'state': self.state,
            'storageKey': self.storage_key,
            'lastError': self.last_error,
            'createdAt': self.created_at.isoformat() if self.created_at else None,
            'updatedAt': self.updated_at.isoformat() if self.updated_at else None,
        }
