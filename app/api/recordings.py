from flask import Blueprint, jsonify

from ..jobs.queue import list_jobs_for_recording
from ..services.transcripts import list_segments

bp = Blueprint("recordings", __name__)


@bp.get("/v1/recordings/<int:recording_id>/transcript")
def transcript(recording_id):
    segments = list_segments(recording_id)
    return jsonify({"recordingId": recording_id, "segments": [s.to_dict() for s in segments]})


@bp.get("/v1/recordings/<int:recording_id>/jobs")
def jobs(recording_id):
    return jsonify({"recordingId": recording_id, "jobs": [j.to_dict() for j in list_jobs_for_recording(recording_id)]})
