from ..extensions import db
from .base import TimestampMixin


class RecordingStatus:
    DRAFT = 'draft'
    UPLOADING = 'uploading'
    PROCESSING = 'processing'
    READY = 'ready'
    ERROR = 'error'


class Recording(db.Model, TimestampMixin):
    __tablename__ = "recordings"
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(255))
    status = db.Column(db.String(20), nullable=False, default=RecordingStatus.DRAFT)

    tracks = db.relationship("Track", back_populates="recording", lazy="select")
