from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import BadRequest, DbFailure, NotFound
from ..jobs import queue
from ..jobs.payloads import ExportPayload
from ..models import ExportArtifact, ExportState, ExportType, JobType, Recording
from . import storage


def find_active_export(recording_id, export_type):
    return (
        ExportArtifact.query
        .filter(ExportArtifact.recording_id == recording_id,
                ExportArtifact.type == export_type,
                ExportArtifact.state.in_(ExportState.ACTIVE))
        .order_by(ExportArtifact.created_at.asc(), ExportArtifact.id.asc())
        .first()
    )


def request_export(recording_id, export_type):
    """Return the active artifact for (recording, type), creating and queueing one if none.

    Returns (artifact, created).
    """
    if export_type not in ExportType.ALL:
        raise BadRequest(f"unknown export type {export_type!r}")
    if db.session.get(Recording, recording_id) is None:
        raise NotFound(f"recording {recording_id} not found")

    existing = find_active_export(recording_id, export_type)
    if existing is not None:
        return existing, False

    try:
        artifact = ExportArtifact(recording_id=recording_id, type=export_type, state=ExportState.QUEUED)
        db.session.add(artifact)
        db.session.flush()
        queue.enqueue(JobType.EXPORT, recording_id,
                      ExportPayload(export_id=artifact.id, type=export_type), commit=False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DbFailure(f"failed to create export: {e}") from e

    current_app.logger.info('export %s (%s) queued for recording %s', artifact.id, export_type, recording_id)
    return artifact, True


def get_export(export_id):
    artifact = db.session.get(ExportArtifact, export_id)
    if artifact is None:
        raise NotFound(f"export {export_id} not found")
    out = artifact.to_dict()
    out['downloadUrl'] = storage.public_url(artifact.storage_key) if artifact.state == ExportState.SUCCEEDED else None
    return out


def list_exports(recording_id):
    return (
        ExportArtifact.query
        .filter_by(recording_id=recording_id)
        .order_by(ExportArtifact.created_at.asc(), ExportArtifact.id.asc())
        .all()
    )
