from .recording import Recording, RecordingStatus
from .track import Track, TrackKind, TrackState
from .upload import Upload, UploadExternalSession, UploadProtocol, UploadState
from .job import Job, JobState, JobType
from .export_artifact import ExportArtifact, ExportState, ExportType
from .transcript import TranscriptSegment
