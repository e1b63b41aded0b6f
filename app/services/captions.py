"""Captioned exports: transcript segments -> SRT -> burned into the video."""
import os
import tempfile

from flask import current_app

from ..errors import TranscriptMissing
from . import media, storage
from .transcripts import list_segments


def _srt_time(ms):
    ms = max(int(ms), 0)
    h, rem = divmod(ms, 3_600_000)
    m, rem = divmod(rem, 60_000)
    s, ms = divmod(rem, 1000)
    return f"{h:02d}:{m:02d}:{s:02d},{ms:03d}"


def segments_to_srt(segments):
    blocks = []
    for i, seg in enumerate(segments, start=1):
        text = (seg.text or '').strip()
        if seg.speaker:
            text = f"[{seg.speaker}] {text}"
        blocks.append(f"{i}\n{_srt_time(seg.start_ms)} --> {_srt_time(seg.end_ms)}\n{text}\n")
    return '\n'.join(blocks)


def render_captioned_export(artifact, source_key):
    """Burn the recording's transcript into `source_key`; return the new key."""
    segments = list_segments(artifact.recording_id)
    if not segments:
        # ASR may still be running; the export job retries
        raise TranscriptMissing(f"recording {artifact.recording_id} has no transcript segments yet")

    out_key = storage.export_key(artifact.recording_id, artifact.id, 'mp4')
    with tempfile.TemporaryDirectory(prefix='captions-') as workdir:
        srt_path = os.path.join(workdir, 'captions.srt')
        with open(srt_path, 'w', encoding='utf-8') as f:
            f.write(segments_to_srt(segments))
        out_path = os.path.join(workdir, 'captioned.mp4')
        with storage.local_copy(source_key) as src:
            media.burn_subtitles(src, srt_path, out_path)
        storage.upload_final(out_path, out_key, 'video/mp4')

    current_app.logger.info('rendered captions for export %s (%s segments)', artifact.id, len(segments))
    return out_key
