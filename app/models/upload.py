from ..extensions import db
from .base import TimestampMixin


class UploadProtocol:
    RESUMABLE = 'resumable'
    MULTIPART = 'multipart'
    ALL = (RESUMABLE, MULTIPART)


class UploadState:
    IN_PROGRESS = 'in_progress'
    COMPLETED = 'completed'


class Upload(db.Model, TimestampMixin):
    __tablename__ = "uploads"
    __table_args__ = (
        db.Index("idx_upload_state_updated", "state", "updated_at"),
    )
    id = db.Column(db.Integer, primary_key=True)
    track_id = db.Column(db.Integer, db.ForeignKey("tracks.id"), nullable=False, unique=True)
    protocol = db.Column(db.String(20), nullable=False)
    bytes_received = db.Column(db.BigInteger, nullable=False, default=0)
    state = db.Column(db.String(20), nullable=False, default=UploadState.IN_PROGRESS)
    # multipart plan; unused for resumable uploads
    storage_bucket = db.Column(db.String(255))
    object_key = db.Column(db.String(512))
    multipart_id = db.Column(db.String(1024))
    part_size = db.Column(db.Integer)
    expected_size = db.Column(db.BigInteger)
    # {"plan": {"partSize": .., "totalParts": ..}, "presignMeta": [{"partNumber": .., "size": ..}]}
    parts_json = db.Column(db.JSON)

    track = db.relationship("Track", back_populates="upload")


class UploadExternalSession(db.Model, TimestampMixin):
    """Maps our upload id to the resumable-upload server's session id."""
    __tablename__ = "upload_external_session_map"
    upload_id = db.Column(db.Integer, db.ForeignKey("uploads.id"), primary_key=True)
    external_session_id = db.Column(db.String(255), nullable=False, unique=True)
