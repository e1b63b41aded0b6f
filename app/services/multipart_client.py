"""Client side of the multipart transport.

Uploads a local file to the presigned part URLs returned by
`initiate_upload`, with a small worker pool and per-part retries. Parts
finish in any order; the result is sorted by part number because the
completion call must list parts ascending.
"""
import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import requests

logger = logging.getLogger(__name__)

BACKOFF_STEP_SEC = 0.3


class PartUploadError(Exception):
    def __init__(self, part_number, message):
        self.part_number = part_number
        super().__init__(f"part {part_number}: {message}")


def _read_part(path, start, end):
    with open(path, 'rb') as f:
        f.seek(start)
        return f.read(end - start)


def upload_parts(path, presigned_urls, part_size, concurrency=4, max_retries=3,
                 on_progress=None, session=None, sleep=time.sleep):
    """PUT each part and return [{'partNumber': n, 'etag': '...'}] sorted ascending.

    `on_progress` receives whole percents, only when the value changes.
    """
    total = os.path.getsize(path)
    owns_session = session is None
    http = session or requests.Session()
    parts = []
    for i, url in enumerate(presigned_urls):
        start = i * part_size
        parts.append((i + 1, url, start, min(start + part_size, total)))

    lock = threading.Lock()
    progress = {'bytes': 0, 'pct': -1}

    def report(n):
        if on_progress is None or not total:
            return
        with lock:
            progress['bytes'] += n
            pct = int(progress['bytes'] * 100 / total)
            if pct == progress['pct']:
                return
            progress['pct'] = pct
        on_progress(pct)

    def run(part):
        number, url, start, end = part
        body = _read_part(path, start, end)
        attempt = 0
        while True:
            try:
                res = http.put(url, data=body, timeout=300)
                if not res.ok:
                    raise PartUploadError(number, f"PUT returned {res.status_code}")
                etag = res.headers.get('ETag') or res.headers.get('etag')
                if not etag:
                    raise PartUploadError(number, 'missing ETag')
                report(len(body))
                return {'partNumber': number, 'etag': etag}
            except (requests.RequestException, PartUploadError) as e:
                attempt += 1
                if attempt > max_retries:
                    raise
                logger.warning('retrying part %s (attempt %s): %s', number, attempt, e)
                sleep(BACKOFF_STEP_SEC * attempt)

    workers = max(1, min(concurrency, len(parts)))
    try:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(run, parts))
    finally:
        if owns_session:
            http.close()
    return sorted(results, key=lambda p: p['partNumber'])
