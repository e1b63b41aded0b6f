import os
import sys

import pytest
from botocore.exceptions import ClientError

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from app import create_app
from app.extensions import db
from app.models import Recording, Track, TrackKind, TrackState
from app.models.base import utcnow


class FakeS3:
    """Records multipart calls; objects are kept as {key: size}."""

    def __init__(self):
        self.objects = {}
        self.sessions = {}
        self.completed = []
        self.uploaded = {}
        self.fail_complete_with = None

    def create_multipart_upload(self, Bucket, Key, ContentType=None, Metadata=None):
        upload_id = f"mp-{len(self.sessions) + 1}"
        self.sessions[upload_id] = {'Bucket': Bucket, 'Key': Key, 'Metadata': Metadata}
        return {'UploadId': upload_id}

    def generate_presigned_url(self, op, Params=None, ExpiresIn=None):
        return f"https://s3.test/{Params['Key']}?partNumber={Params['PartNumber']}&uploadId={Params['UploadId']}"

    def complete_multipart_upload(self, Bucket, Key, UploadId, MultipartUpload):
        if self.fail_complete_with:
            raise ClientError({'Error': {'Code': self.fail_complete_with, 'Message': 'x'}},
                              'CompleteMultipartUpload')
        self.completed.append({'Key': Key, 'UploadId': UploadId, 'Parts': MultipartUpload['Parts']})

    def head_object(self, Bucket, Key):
        if Key not in self.objects:
            raise ClientError({'Error': {'Code': '404', 'Message': 'Not Found'}}, 'HeadObject')
        return {'ContentLength': self.objects[Key]}

    def upload_file(self, path, Bucket, Key, ExtraArgs=None):
        with open(path, 'rb') as f:
            self.uploaded[Key] = f.read()

    def download_file(self, Bucket, Key, path):
        with open(path, 'wb') as f:
            f.write(self.uploaded.get(Key, b''))


@pytest.fixture
def app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'pipeline.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 30, 'check_same_thread': False}},
        'STORAGE_BACKEND': 'local',
        'LOCAL_STORAGE_DIR': str(tmp_path / 'storage'),
        'MEDIA_ROOT': str(tmp_path / 'media'),
        'TUSD_UPLOAD_DIR': str(tmp_path / 'tusd'),
        'UPLOAD_TUS_BASE_URL': 'http://tus.test/files',
        'S3_BUCKET': 'media-test',
        'S3_PUBLIC_BASE_URL': 'https://cdn.test',
        'ASR_PROVIDER': 'placeholder',
        'WORKER_POLL_INTERVAL': 0.01,
    })
    os.makedirs(app.config['TUSD_UPLOAD_DIR'], exist_ok=True)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def s3(monkeypatch):
    fake = FakeS3()
    monkeypatch.setattr('app.services.storage._s3_client', lambda: fake)
    return fake


@pytest.fixture
def recording(app):
    rec = Recording(title='standup')
    db.session.add(rec)
    db.session.commit()
    return rec


def make_track(recording, kind=TrackKind.AUDIO, state=TrackState.RECORDING, raw=None, final=None,
               participant='p1'):
    track = Track(recording_id=recording.id, participant_id=participant, kind=kind, state=state,
                  storage_key_raw=raw, storage_key_final=final)
    if final:
        track.processed_at = utcnow()
    db.session.add(track)
    db.session.commit()
    return track
