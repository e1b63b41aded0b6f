import os

import pytest

from app.errors import StorageFailure, ToolFailure
from app.services import media, storage, tusd


def test_probe_helpers():
    info = {
        'streams': [{'codec_type': 'audio', 'codec_name': 'aac', 'duration': '3.25'}],
        'format': {'duration': 'nan'},
    }
    assert media.is_audio_only(info) is True
    assert media.duration_seconds(info) == 3.25
    assert media.primary_codec(info) == 'aac'
    assert media.to_seconds('inf') is None
    assert media.to_seconds(None) is None


def test_missing_binary_is_tool_failure(app, tmp_path):
    app.config['FFPROBE_BIN'] = str(tmp_path / 'no-such-ffprobe')
    with pytest.raises(ToolFailure):
        media.probe(str(tmp_path / 'in.webm'))


def test_parse_tus_id():
    assert tusd.parse_tus_id('http://tus.test/files/abc123') == 'abc123'
    assert tusd.parse_tus_id('http://tus.test/files/abc123/?x=1') == 'abc123'
    assert tusd.parse_tus_id('') is None
    assert tusd.parse_tus_id(None) is None


def test_find_by_tus_id_rejects_paths(app):
    assert tusd.find_by_tus_id('../etc/passwd') is None
    assert tusd.find_by_tus_id('.hidden') is None
    assert tusd.find_by_tus_id('absent') is None


def test_key_layout():
    assert storage.resumable_raw_key(1, 2, 3) == 'recordings/1/tracks/2/raw/3.bin'
    assert storage.multipart_object_key(1, 3) == 'recordings/1/tracks/3.raw'
    assert storage.final_key(1, 2, '.wav') == 'recordings/1/tracks/2/final/2.wav'
    assert storage.export_key(1, 9, 'mp4') == 'recordings/1/exports/9.mp4'


def test_s3_local_copy_is_removed(app, s3):
    s3.uploaded['recordings/1/tracks/2/final/2.wav'] = b'pcm'
    with storage.local_copy('recordings/1/tracks/2/final/2.wav', source='s3') as path:
        with open(path, 'rb') as f:
            assert f.read() == b'pcm'
    assert not os.path.exists(path)


def test_missing_media_file(app):
    with pytest.raises(StorageFailure):
        with storage.local_copy('recordings/1/none.bin', source='media'):
            pass


def test_upload_final_to_s3(app, s3, tmp_path):
    app.config['STORAGE_BACKEND'] = 's3'
    src = tmp_path / 'out.mp4'
    src.write_bytes(b'mp4')
    assert storage.upload_final(str(src), 'recordings/1/exports/1.mp4', 'video/mp4') == 'recordings/1/exports/1.mp4'
    assert s3.uploaded['recordings/1/exports/1.mp4'] == b'mp4'
    assert storage.public_url('recordings/1/exports/1.mp4') == 'https://cdn.test/recordings/1/exports/1.mp4'
