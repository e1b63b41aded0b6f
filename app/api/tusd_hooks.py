# app/api/tusd_hooks.py
from flask import Blueprint, request, jsonify, current_app

from ..errors import PipelineError
from ..services.uploads import save_external_session

bp = Blueprint("tusd_hooks", __name__)

CONTINUE = {"Action": "continue"}


@bp.post("/tusd/hooks")
def tusd_hooks():
    """tusd HTTP hook receiver.

    Accepts the modern shape ({"Upload": {"ID", "MetaData"}} with a Hook-Name
    header or {"Type": ...}) and the legacy flat shape ({"Type", "MetaData"}).
    Always answers `continue` so uploads are never blocked by this service.
    """
    body = request.get_json(silent=True) or {}
    event = body.get("Event") or {}
    upload_info = body.get("Upload") or event.get("Upload") or {}
    hook = request.headers.get("Hook-Name") or body.get("Type") or ""
    meta = upload_info.get("MetaData") or body.get("MetaData") or {}

    if hook != "post-create":
        return jsonify(CONTINUE), 200

    tus_id = upload_info.get("ID") or body.get("ID")
    upload_id = meta.get("upload-id") or meta.get("upload_id")
    if not tus_id or not upload_id:
        current_app.logger.warning('post-create missing tus id or upload-id: %s %s', tus_id, meta)
        return jsonify(CONTINUE), 200

    try:
        save_external_session(upload_id, tus_id)
        current_app.logger.info('saved tus mapping upload=%s tus=%s', upload_id, tus_id)
    except (PipelineError, ValueError) as e:
        # completion falls back to scanning tusd metadata
        current_app.logger.error('saving tus mapping failed upload=%s tus=%s: %s', upload_id, tus_id, e)
    return jsonify(CONTINUE), 200
