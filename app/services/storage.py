import os
import shutil
import tempfile
from contextlib import contextmanager

from flask import current_app
import boto3
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError

from ..errors import StorageFailure

BACKEND_LOCAL = 'local'
BACKEND_S3 = 's3'


# -- key layout -------------------------------------------------------------

def resumable_raw_key(recording_id, track_id, upload_id):
    return f"recordings/{recording_id}/tracks/{track_id}/raw/{upload_id}.bin"


def multipart_object_key(recording_id, upload_id):
    return f"recordings/{recording_id}/tracks/{upload_id}.raw"


def final_key(recording_id, track_id, ext):
    ext = ext.lstrip('.')
    return f"recordings/{recording_id}/tracks/{track_id}/final/{track_id}.{ext}"


def export_key(recording_id, export_id, ext):
    ext = ext.lstrip('.')
    return f"recordings/{recording_id}/exports/{export_id}.{ext}"


# -- clients ----------------------------------------------------------------

def _s3_client():
    # build boto3 client kwargs flexibly: endpoint_url may be empty in AWS-managed S3
    s3_kwargs = {}
    endpoint = current_app.config.get('S3_ENDPOINT')
    if endpoint:
        s3_kwargs['endpoint_url'] = endpoint
    region = current_app.config.get('S3_REGION')
    if region:
        s3_kwargs['region_name'] = region

    # path-style keeps R2 / MinIO endpoints happy; ensure sigv4 for presigned part URLs
    s3_config = Config(signature_version='s3v4', s3={'addressing_style': 'path'})

    return boto3.client(
        's3',
        aws_access_key_id=current_app.config.get('S3_ACCESS_KEY'),
        aws_secret_access_key=current_app.config.get('S3_SECRET_KEY'),
        config=s3_config,
        **s3_kwargs,
    )


def s3_client():
    return _s3_client()


def bucket_name():
    bucket = current_app.config.get('S3_BUCKET')
    if not bucket:
        raise StorageFailure('S3_BUCKET is not configured')
    return bucket


def backend():
    return current_app.config.get('STORAGE_BACKEND', BACKEND_LOCAL)


def _local_object_path(key):
    d = current_app.config['LOCAL_STORAGE_DIR']
    return os.path.join(d, key)


# -- MEDIA_ROOT (resumable raw files) ----------------------------------------

def media_path(key):
    if os.path.isabs(key):
        return key
    return os.path.join(current_app.config['MEDIA_ROOT'], key)


def move_into_media_root(src, key):
    """Move `src` to MEDIA_ROOT/key; rename first, copy + unlink across devices."""
    dest = media_path(key)
    try:
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        shutil.move(src, dest)
    except OSError as e:
        raise StorageFailure(
            'Failed to move uploaded data into media root',
            details={'src': src, 'dest': dest, 'error': str(e)},
        ) from e
    return dest


# -- object storage -----------------------------------------------------------

def upload_final(local_path, key, content_type):
    """Put a finished artifact under `key` in the configured backend."""
    if backend() == BACKEND_S3:
        try:
            _s3_client().upload_file(local_path, bucket_name(), key, ExtraArgs={'ContentType': content_type})
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"upload of {key} failed: {e}", details={'key': key}) from e
        return key

    dest = _local_object_path(key)
    try:
        os.makedirs(os.path.dirname(dest), exist_ok=True)
        shutil.copyfile(local_path, dest)
    except OSError as e:
        raise StorageFailure(f"local write of {key} failed: {e}", details={'key': key}) from e
    return key


def head_size(key, bucket=None):
    """Size in bytes of an object in S3."""
    try:
        head = _s3_client().head_object(Bucket=bucket or bucket_name(), Key=key)
    except (BotoCoreError, ClientError) as e:
        raise StorageFailure(f"head of {key} failed: {e}", details={'key': key}) from e
    return int(head.get('ContentLength') or 0)


@contextmanager
def local_copy(key, source=None, bucket=None):
    """Yield a local path for `key`; temp downloads are removed on exit.

    `source` selects where the key lives: 'media' (MEDIA_ROOT), 's3' or
    'local' (LOCAL_STORAGE_DIR). Defaults to the configured backend.
    """
    source = source or backend()
    if source == 'media':
        path = media_path(key)
        if not os.path.exists(path):
            raise StorageFailure(f"raw file missing at {path}", details={'key': key})
        yield path
        return
    if source == BACKEND_LOCAL:
        path = _local_object_path(key)
        if not os.path.exists(path):
            raise StorageFailure(f"object missing at {path}", details={'key': key})
        yield path
        return

    ext = os.path.splitext(key)[1] or '.bin'
    fd, tmp_path = tempfile.mkstemp(prefix='pipeline-', suffix=ext)
    os.close(fd)
    try:
        try:
            _s3_client().download_file(bucket or bucket_name(), key, tmp_path)
        except (BotoCoreError, ClientError) as e:
            raise StorageFailure(f"download of {key} failed: {e}", details={'key': key}) from e
        yield tmp_path
    finally:
        try:
            os.unlink(tmp_path)
        except OSError:
            current_app.logger.warning('could not remove temp file %s', tmp_path)


def public_url(key):
    base = current_app.config.get('S3_PUBLIC_BASE_URL')
    if not key or not base:
        return None
    return f"{base.rstrip('/')}/{key}"
