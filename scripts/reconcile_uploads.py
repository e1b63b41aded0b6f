"""Queue transcode jobs for tracks left in `uploaded` without one.

Safe to run repeatedly (e.g. from cron).
"""
import logging
import os
import sys

ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app import create_app
from app.jobs.reconcile import reconcile_uploaded_tracks


def main():
    logging.basicConfig(level=logging.INFO)
    app = create_app()
    with app.app_context():
        queued = reconcile_uploaded_tracks()
        print(f"queued transcode for {len(queued)} track(s): {queued}")


if __name__ == '__main__':
    main()
