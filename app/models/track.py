from ..extensions import db
from ..errors import InvalidState
from .base import TimestampMixin


class TrackKind:
    AUDIO = 'audio'
    VIDEO = 'video'
    ALL = (AUDIO, VIDEO)


class TrackState:
    RECORDING = 'recording'
    UPLOADED = 'uploaded'
    PROCESSED = 'processed'
    ORDER = (RECORDING, UPLOADED, PROCESSED)


class Track(db.Model, TimestampMixin):
    __tablename__ = "tracks"
    id = db.Column(db.Integer, primary_key=True)
    recording_id = db.Column(db.Integer, db.ForeignKey("recordings.id"), nullable=False, index=True)
    participant_id = db.Column(db.String(64), nullable=False)
    kind = db.Column(db.String(10), nullable=False)
    state = db.Column(db.String(20), nullable=False, default=TrackState.RECORDING)
    storage_key_raw = db.Column(db.String(512))
    storage_key_final = db.Column(db.String(512))
    codec = db.Column(db.String(64))
    duration_ms = db.Column(db.Integer)
    processed_at = db.Column(db.DateTime)

    recording = db.relationship("Recording", back_populates="tracks")
    upload = db.relationship("Upload", back_populates="track", uselist=False)

    def advance_to(self, state):
        """Move forward along recording -> uploaded -> processed.

        Re-applying the current state is allowed so idempotent callers do not
        have to special-case it.
        """
        current = TrackState.ORDER.index(self.state or TrackState.RECORDING)
        target = TrackState.ORDER.index(state)
        if target < current:
            raise InvalidState(
                f"track {self.id} cannot move from {self.state} to {state}",
                details={'trackId': self.id},
            )
        if state == TrackState.UPLOADED and not self.storage_key_raw:
            raise InvalidState(f"track {self.id} has no raw storage key")
        if state == TrackState.PROCESSED and not self.storage_key_final:
            raise InvalidState(f"track {self.id} has no final storage key")
        self.state = state
