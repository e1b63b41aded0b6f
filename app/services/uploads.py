"""Upload initiation and finalization.

Two transports end in the same place: the Upload is `completed`, its Track is
`uploaded` with a raw storage key, and one `transcode` job is queued. Those
three writes share one commit. Completion is idempotent so clients can retry
after a timeout without triggering a second transcode.
"""
import math
import os
from dataclasses import dataclass

from flask import current_app
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from ..extensions import db
from ..errors import (
    BadRequest, DbFailure, InvalidState, NotFound, SizeMismatch,
    StorageFailure, TransportNotFound,
)
from ..jobs import queue
from ..jobs.payloads import TrackPayload
from ..models import (
    JobType, Recording, RecordingStatus, Track, TrackKind, TrackState,
    Upload, UploadExternalSession, UploadProtocol, UploadState,
)
from . import storage, tusd


@dataclass
class FinalizeResult:
    bytes_received: int
    raw_storage_key: str
    already_completed: bool = False

    def to_dict(self):
        return {
            'bytesReceived': self.bytes_received,
            'rawStorageKey': self.raw_storage_key,
            'alreadyCompleted': self.already_completed,
        }


# -- initiation ---------------------------------------------------------------

def plan_parts(total_size, requested_part_size=None):
    """Return (part_size, [{partNumber, size}, ...]) for a multipart upload."""
    min_part = current_app.config.get('MULTIPART_MIN_PART_SIZE', 5 * 1024 * 1024)
    default_part = current_app.config.get('MULTIPART_DEFAULT_PART_SIZE', 8 * 1024 * 1024)
    part_size = max(int(requested_part_size or default_part), min_part)
    total_parts = math.ceil(total_size / part_size)
    parts = []
    for i in range(total_parts):
        start = i * part_size
        end = min((i + 1) * part_size, total_size)
        parts.append({'partNumber': i + 1, 'size': end - start})
    return part_size, parts


def initiate_upload(recording_id, participant_id, kind, protocol, size=None,
                    part_size=None, filename=None, content_type=None):
    """Create Track + Upload and return the transport plan for the client."""
    if not recording_id or not participant_id or not kind or not protocol:
        raise BadRequest('Missing required fields: recordingId, participantId, kind, protocol')
    if kind not in TrackKind.ALL:
        raise BadRequest(f"unknown track kind {kind!r}")
    if protocol not in UploadProtocol.ALL:
        raise BadRequest(f"unknown upload protocol {protocol!r}")

    recording = db.session.get(Recording, recording_id)
    if recording is None:
        raise NotFound(f"recording {recording_id} not found")

    if protocol == UploadProtocol.MULTIPART:
        try:
            size = int(size or 0)
        except (TypeError, ValueError):
            size = 0
        if size <= 0:
            raise BadRequest('size is required for multipart', details={'size': size})

    track = Track(recording_id=recording.id, participant_id=str(participant_id),
                  kind=kind, state=TrackState.RECORDING)
    upload = Upload(track=track, protocol=protocol, state=UploadState.IN_PROGRESS, bytes_received=0)
    db.session.add_all([track, upload])
    if recording.status == RecordingStatus.DRAFT:
        recording.status = RecordingStatus.UPLOADING

    try:
        db.session.flush()
        if protocol == UploadProtocol.MULTIPART:
            plan = _open_multipart(recording, track, upload, size, part_size, filename, content_type)
        else:
            base = current_app.config['UPLOAD_TUS_BASE_URL'].rstrip('/')
            plan = {'tusEndpoint': f"{base}/", 'metadata': {'upload-id': str(upload.id)}}
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DbFailure(f"failed to create track and upload: {e}") from e
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info('initiated %s upload %s for track %s', protocol, upload.id, track.id)
    out = {
        'upload': {
            'id': upload.id,
            'trackId': track.id,
            'protocol': upload.protocol,
            'state': upload.state,
        },
    }
    out.update(plan)
    return out


def _open_multipart(recording, track, upload, size, requested_part_size, filename, content_type):
    bucket = storage.bucket_name()
    object_key = storage.multipart_object_key(recording.id, upload.id)
    part_size, parts = plan_parts(size, requested_part_size)
    expires = current_app.config.get('PRESIGN_EXPIRES', 900)
    s3 = storage.s3_client()
    try:
        created = s3.create_multipart_upload(
            Bucket=bucket,
            Key=object_key,
            ContentType=content_type or 'application/octet-stream',
            Metadata={
                'recordingId': str(recording.id),
                'participantId': str(track.participant_id),
                'trackId': str(track.id),
                'uploadId': str(upload.id),
                'filename': filename or f"{upload.id}.bin",
            },
        )
        multipart_id = created.get('UploadId')
        if not multipart_id:
            raise StorageFailure('Failed to create multipart upload', details={'key': object_key})
        urls = [
            s3.generate_presigned_url(
                'upload_part',
                Params={'Bucket': bucket, 'Key': object_key, 'UploadId': multipart_id,
                        'PartNumber': p['partNumber']},
                ExpiresIn=expires,
            )
            for p in parts
        ]
    except (BotoCoreError, ClientError) as e:
        raise StorageFailure(f"multipart initiation failed: {e}", details={'key': object_key}) from e

    upload.storage_bucket = bucket
    upload.object_key = object_key
    upload.multipart_id = multipart_id
    upload.part_size = part_size
    upload.expected_size = size
    upload.parts_json = {
        'plan': {'partSize': part_size, 'totalParts': len(parts)},
        'presignMeta': parts,
    }
    return {'presignedUrls': urls, 'partSize': part_size}


# -- resumable session mapping -------------------------------------------------

def save_external_session(upload_id, external_session_id):
    """Record which tusd session belongs to our upload (upsert by upload id)."""
    upload = db.session.get(Upload, int(upload_id))
    if upload is None:
        raise NotFound(f"upload {upload_id} not found")
    row = db.session.get(UploadExternalSession, upload.id)
    if row is None:
        row = UploadExternalSession(upload_id=upload.id, external_session_id=external_session_id)
        db.session.add(row)
    else:
        row.external_session_id = external_session_id
    try:
        db.session.commit()
    except IntegrityError as e:
        db.session.rollback()
        raise InvalidState(
            f"external session {external_session_id} already mapped to another upload",
        ) from e
    return row


def external_session_for(upload_id):
    row = db.session.get(UploadExternalSession, int(upload_id))
    return row.external_session_id if row else None


# -- finalization --------------------------------------------------------------

def _load(upload_id):
    try:
        upload = db.session.get(Upload, int(upload_id))
    except (TypeError, ValueError):
        raise BadRequest(f"invalid upload id {upload_id!r}")
    except SQLAlchemyError as e:
        raise DbFailure(f"failed to look up upload {upload_id}: {e}") from e
    if upload is None or upload.track is None:
        raise NotFound(f"upload {upload_id} not found", details={'uploadId': upload_id})
    return upload, upload.track


def _already_done(upload, track, key):
    if upload.state != UploadState.COMPLETED:
        return None
    if track.storage_key_raw == key:
        return FinalizeResult(int(upload.bytes_received or 0), key, already_completed=True)
    raise InvalidState(
        'upload already completed with a different storage key',
        details={'uploadId': upload.id, 'storageKeyRaw': track.storage_key_raw, 'requested': key},
    )


def _mark_completed(upload, track, key, size):
    """State change + transcode enqueue as one commit.

    The flip to `completed` is a conditional UPDATE on `in_progress`, so of
    two overlapping completions only one enqueues; the other gets the
    already-completed result.
    """
    upload_id = upload.id
    try:
        result = db.session.execute(
            update(Upload)
            .where(Upload.id == upload_id, Upload.state == UploadState.IN_PROGRESS)
            .values(state=UploadState.COMPLETED, bytes_received=size)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            db.session.rollback()
            current_app.logger.info('upload %s was completed concurrently', upload_id)
            done = _already_done(upload, upload.track, key)
            if done is None:
                raise InvalidState(f"upload {upload_id} could not be marked completed")
            return done

        track.storage_key_raw = key
        track.advance_to(TrackState.UPLOADED)
        queue.enqueue(JobType.TRANSCODE, track.recording_id, TrackPayload(track.id), commit=False)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise DbFailure(f"failed to mark upload {upload_id} completed: {e}") from e
    except Exception:
        db.session.rollback()
        raise
    current_app.logger.info('upload %s completed (%s bytes); transcode queued for track %s',
                            upload_id, size, track.id)
    return FinalizeResult(size, key)


def complete_resumable(upload_id, expected_bytes=None, tus_url=None):
    upload, track = _load(upload_id)
    if upload.protocol != UploadProtocol.RESUMABLE:
        raise InvalidState(f"upload {upload.id} is not a resumable upload")

    key = storage.resumable_raw_key(track.recording_id, track.id, upload.id)
    done = _already_done(upload, track, key)
    if done:
        return done

    dest = storage.media_path(key)
    moved = os.path.isfile(dest)
    if moved:
        # a previous attempt moved the bytes but did not commit
        src = dest
        tus_id = None
    else:
        tus_id = tusd.parse_tus_id(tus_url) or external_session_for(upload.id)
        src = tusd.find_by_tus_id(tus_id) if tus_id else None
        if src is None:
            src = tusd.find_by_upload_id(upload.id)
        if src is None:
            raise TransportNotFound(
                'Could not locate uploaded data in tusd storage',
                details={'uploadId': upload.id, 'tusId': tus_id},
            )

    got = os.path.getsize(src)
    if expected_bytes is not None:
        try:
            expected = int(expected_bytes)
        except (TypeError, ValueError):
            raise BadRequest(f"invalid expected byte count {expected_bytes!r}")
        if got != expected:
            raise SizeMismatch(
                'Uploaded size does not match expectedBytes',
                details={'got': got, 'expected': expected},
            )

    if not moved:
        storage.move_into_media_root(src, key)
        tusd.remove_sidecar(src)

    return _mark_completed(upload, track, key, got)


def _validate_parts(parts):
    if not isinstance(parts, list) or not parts:
        raise BadRequest('parts[] is required for multipart completion')
    clean = []
    for p in parts:
        try:
            number = int(p['partNumber'])
            etag = str(p['etag'])
        except (KeyError, TypeError, ValueError):
            raise BadRequest('each part needs partNumber and etag', details={'part': p})
        if number < 1 or not etag:
            raise BadRequest('invalid part', details={'part': p})
        clean.append({'PartNumber': number, 'ETag': etag})
    numbers = [p['PartNumber'] for p in clean]
    if len(set(numbers)) != len(numbers):
        raise BadRequest('duplicate part numbers', details={'parts': numbers})
    # storage APIs require ascending part numbers
    return sorted(clean, key=lambda p: p['PartNumber'])


def complete_multipart(upload_id, parts, total_bytes=None):
    sorted_parts = _validate_parts(parts)
    upload, track = _load(upload_id)
    if upload.protocol != UploadProtocol.MULTIPART:
        raise InvalidState(f"upload {upload.id} is not a multipart upload")

    done = _already_done(upload, track, upload.object_key)
    if done:
        return done

    bucket, key, multipart_id = upload.storage_bucket, upload.object_key, upload.multipart_id
    if not bucket or not key or not multipart_id:
        raise InvalidState('Multipart metadata missing on upload row',
                           details={'bucket': bucket, 'objectKey': key, 'multipartId': multipart_id})

    s3 = storage.s3_client()
    try:
        s3.complete_multipart_upload(
            Bucket=bucket, Key=key, UploadId=multipart_id,
            MultipartUpload={'Parts': sorted_parts},
        )
    except ClientError as e:
        # NoSuchUpload after a successful earlier complete: the object exists already
        if e.response.get('Error', {}).get('Code') != 'NoSuchUpload':
            raise StorageFailure(f"complete multipart failed: {e}", details={'key': key}) from e
        current_app.logger.warning('multipart session for upload %s already closed', upload.id)
    except BotoCoreError as e:
        raise StorageFailure(f"complete multipart failed: {e}", details={'key': key}) from e

    try:
        got = storage.head_size(key, bucket=bucket)
    except StorageFailure:
        current_app.logger.warning('head after complete failed for upload %s; using declared size', upload.id)
        got = None

    declared = total_bytes if total_bytes is not None else upload.expected_size
    if got is not None and declared is not None and int(declared) != got:
        raise SizeMismatch('Object size does not match declared size',
                           details={'got': got, 'expected': int(declared)})
    size = got if got is not None else int(declared or 0)

    return _mark_completed(upload, track, key, size)


def complete_upload(upload_id, body=None):
    """Dispatch on the upload's stored protocol."""
    body = body or {}
    upload, _ = _load(upload_id)
    requested = body.get('protocol')
    if requested and requested != upload.protocol:
        raise BadRequest(f"upload {upload.id} uses {upload.protocol}, not {requested}")
    if upload.protocol == UploadProtocol.MULTIPART:
        return complete_multipart(upload.id, body.get('parts'), body.get('totalBytes'))
    return complete_resumable(upload.id, body.get('bytes'), body.get('tusUrl'))
