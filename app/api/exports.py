from flask import Blueprint, request, jsonify

from ..services import exports

bp = Blueprint("exports", __name__)


@bp.post("/v1/recordings/<int:recording_id>/exports")
def create_export(recording_id):
    body = request.get_json(silent=True) or {}
    artifact, created = exports.request_export(recording_id, body.get("type"))
    return jsonify({"export": artifact.to_dict()}), 201 if created else 200


@bp.get("/v1/recordings/<int:recording_id>/exports")
def list_exports(recording_id):
    rows = exports.list_exports(recording_id)
    return jsonify({"recordingId": recording_id, "exports": [r.to_dict() for r in rows]})


@bp.get("/v1/exports/<int:export_id>")
def get_export(export_id):
    return jsonify({"export": exports.get_export(export_id)})
