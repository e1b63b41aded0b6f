"""Run the pipeline poll loops inside the Flask app context.

Usage:
  source .venv/bin/activate
  python scripts/run_workers.py                 # transcode, asr and export loops
  python scripts/run_workers.py transcode asr   # only these job types

SIGINT / SIGTERM set the shared stop event; each loop finishes the job it is
running before it exits.
"""

import logging
import os
import signal
import sys
import threading

# Ensure project root is on sys.path when running from scripts/ or other cwd
ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from app import create_app
from app.jobs.worker import build_workers


def _serve(app, worker):
    with app.app_context():
        worker.run()


def main(argv):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s %(levelname)s %(name)s: %(message)s')
    app = create_app()
    stop = threading.Event()

    def request_stop(signum, frame):
        app.logger.info('signal %s received; stopping after current jobs', signum)
        stop.set()

    signal.signal(signal.SIGINT, request_stop)
    signal.signal(signal.SIGTERM, request_stop)

    with app.app_context():
        workers = build_workers(stop, job_types=argv or None)

    threads = [threading.Thread(target=_serve, args=(app, w), name=w.name) for w in workers]
    for t in threads:
        t.start()
    app.logger.info('workers started (pid %s): %s', os.getpid(), ', '.join(w.name for w in workers))
    # join with a timeout so the main thread keeps receiving signals
    while any(t.is_alive() for t in threads):
        for t in threads:
            t.join(timeout=0.5)
    app.logger.info('workers exited (pid %s)', os.getpid())


if __name__ == '__main__':
    main(sys.argv[1:])
