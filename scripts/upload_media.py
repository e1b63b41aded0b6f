"""Upload a local media file through the multipart transport.

Usage:
  python scripts/upload_media.py http://localhost:5000 <recording_id> <participant_id> <audio|video> <path>
"""
import logging
import os
import sys

import requests

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app.services.multipart_client import upload_parts


def main(base_url, recording_id, participant_id, kind, path):
    logging.basicConfig(level=logging.INFO)
    base_url = base_url.rstrip('/')
    size = os.path.getsize(path)
    r = requests.post(f"{base_url}/v1/uploads/initiate", json={
        'recordingId': int(recording_id),
        'participantId': participant_id,
        'kind': kind,
        'protocol': 'multipart',
        'size': size,
        'filename': os.path.basename(path),
    }, timeout=60)
    r.raise_for_status()
    plan = r.json()
    upload_id = plan['upload']['id']

    parts = upload_parts(path, plan['presignedUrls'], plan['partSize'],
                         on_progress=lambda pct: print(f"\r{pct}%", end='', flush=True))
    print()

    r = requests.post(f"{base_url}/v1/uploads/{upload_id}/complete", json={
        'protocol': 'multipart',
        'parts': parts,
        'totalBytes': size,
    }, timeout=120)
    r.raise_for_status()
    print(r.json())


if __name__ == '__main__':
    if len(sys.argv) != 6:
        print(__doc__)
        sys.exit(2)
    main(*sys.argv[1:])
