"""Locate bytes assembled by the external resumable-upload server (tusd).

tusd keeps each upload as `<TUSD_UPLOAD_DIR>/<id>` plus a JSON sidecar
`<id>.info` whose metadata carries the `upload-id` the client was given at
initiation. Depending on the tusd build the metadata values are plain or
base64-encoded.
"""
import base64
import binascii
import json
import os
import re

from flask import current_app

_B64 = re.compile(r'^[A-Za-z0-9+/]+={0,2}$')


def upload_dir():
    return current_app.config['TUSD_UPLOAD_DIR']


def parse_tus_id(url):
    """Extract the tus resource id from `.../files/<id>[?query]`."""
    if not url:
        return None
    last = url.strip().split('?', 1)[0].rstrip('/').split('/')[-1]
    return last or None


def find_by_tus_id(tus_id):
    if not tus_id or '/' in tus_id or tus_id.startswith('.'):
        return None
    path = os.path.join(upload_dir(), tus_id)
    return path if os.path.isfile(path) else None


def _maybe_b64(value):
    if value is None:
        return ''
    s = str(value).strip()
    if not _B64.match(s) or len(s) % 4:
        return s
    try:
        return base64.b64decode(s).decode('utf-8')
    except (binascii.Error, UnicodeDecodeError):
        return s


def find_by_upload_id(upload_id):
    """Scan `.info` sidecars for metadata `upload-id == upload_id`."""
    d = upload_dir()
    if not os.path.isdir(d):
        return None
    wanted = str(upload_id)
    for name in sorted(os.listdir(d)):
        if not name.endswith('.info'):
            continue
        info_path = os.path.join(d, name)
        try:
            with open(info_path, 'r', encoding='utf-8') as f:
                info = json.load(f)
        except (OSError, ValueError):
            # half-written or foreign sidecar
            continue
        meta = info.get('MetaData') or info.get('metadata') or {}
        value = meta.get('upload-id', meta.get('upload_id'))
        # a plain numeric id can also look like base64; accept either reading
        if str(value).strip() != wanted and _maybe_b64(value) != wanted:
            continue
        data_path = os.path.join(d, name[:-len('.info')])
        if os.path.isfile(data_path):
            return data_path
    return None


def remove_sidecar(data_path):
    info_path = data_path + '.info'
    if not os.path.exists(info_path):
        return
    try:
        os.unlink(info_path)
    except OSError:
        current_app.logger.warning('could not remove tusd sidecar %s', info_path)
