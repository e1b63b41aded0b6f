from flask import Blueprint, request, jsonify

from ..services import uploads

bp = Blueprint("uploads", __name__)


@bp.post("/v1/uploads/initiate")
def initiate():
    body = request.get_json(silent=True) or {}
    plan = uploads.initiate_upload(
        recording_id=body.get("recordingId"),
        participant_id=body.get("participantId"),
        kind=body.get("kind"),
        protocol=body.get("protocol"),
        size=body.get("size"),
        part_size=body.get("partSize"),
        filename=body.get("filename"),
        content_type=body.get("contentType"),
    )
    return jsonify(plan), 200


@bp.post("/v1/uploads/<int:upload_id>/complete")
def complete(upload_id):
    body = request.get_json(silent=True) or {}
    result = uploads.complete_upload(upload_id, body)
    return jsonify(result.to_dict()), 200
