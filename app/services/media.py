"""ffprobe / ffmpeg wrappers.

The only contract the pipeline relies on: probe returns stream metadata and
format duration; every conversion either exits 0 or raises ToolFailure with
the tool's diagnostic text.
"""
import json
import subprocess

from flask import current_app

from ..errors import ToolFailure

AUDIO_SAMPLE_RATE = 48000
AUDIO_CHANNELS = 1
VIDEO_FPS = 30
VIDEO_CRF = 23
VIDEO_PRESET = 'medium'
AUDIO_BITRATE_KBPS = 128


def _run(args, timeout=None):
    timeout = timeout or current_app.config.get('FFMPEG_TIMEOUT', 3600)
    current_app.logger.debug('exec: %s', ' '.join(args))
    try:
        result = subprocess.run(args, capture_output=True, text=True, timeout=timeout)
    except (OSError, subprocess.TimeoutExpired) as e:
        raise ToolFailure(f"{args[0]} could not run: {e}") from e
    if result.returncode != 0:
        stderr = (result.stderr or result.stdout or '').strip()
        raise ToolFailure(f"{args[0]} failed (rc={result.returncode}): {stderr[-2000:]}")
    return result


def probe(path):
    """Return ffprobe's JSON: {"streams": [...], "format": {...}}."""
    args = [
        current_app.config.get('FFPROBE_BIN', 'ffprobe'),
        '-v', 'error',
        '-print_format', 'json',
        '-show_format',
        '-show_streams',
        path,
    ]
    result = _run(args, timeout=120)
    try:
        data = json.loads(result.stdout or '{}')
    except ValueError as e:
        raise ToolFailure(f"ffprobe returned invalid JSON: {e}") from e
    data.setdefault('streams', [])
    data.setdefault('format', {})
    return data


def is_audio_only(probe_result):
    return not any(s.get('codec_type') == 'video' for s in probe_result.get('streams', []))


def to_seconds(value):
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if n != n or n in (float('inf'), float('-inf')):
        return None
    return n


def duration_seconds(probe_result):
    """Format duration, falling back to the first stream that reports one."""
    d = to_seconds(probe_result.get('format', {}).get('duration'))
    if d is not None:
        return d
    for s in probe_result.get('streams', []):
        d = to_seconds(s.get('duration'))
        if d is not None:
            return d
    return None


def primary_codec(probe_result):
    kind = 'audio' if is_audio_only(probe_result) else 'video'
    for s in probe_result.get('streams', []):
        if s.get('codec_type') == kind:
            return s.get('codec_name')
    return None


def transcode_audio(input_path, out_path):
    """Normalize to mono 16-bit PCM WAV at 48 kHz."""
    args = [
        current_app.config.get('FFMPEG_BIN', 'ffmpeg'),
        '-y',
        '-i', input_path,
        '-vn',
        '-ac', str(AUDIO_CHANNELS),
        '-ar', str(AUDIO_SAMPLE_RATE),
        '-sample_fmt', 's16',
        out_path,
    ]
    _run(args)
    return out_path


def transcode_video(input_path, out_path, fps=VIDEO_FPS, crf=VIDEO_CRF, preset=VIDEO_PRESET,
                    audio_bitrate_kbps=AUDIO_BITRATE_KBPS):
    """H.264 + AAC mp4, frame rate capped, web-optimized (faststart)."""
    args = [
        current_app.config.get('FFMPEG_BIN', 'ffmpeg'),
        '-y',
        '-i', input_path,
        '-map', '0:v:0?',
        '-r', str(fps),
        '-c:v', 'libx264',
        '-preset', preset,
        '-crf', str(crf),
        '-pix_fmt', 'yuv420p',
        '-map', '0:a:0?',
        '-c:a', 'aac',
        '-b:a', f"{audio_bitrate_kbps}k",
        '-movflags', '+faststart',
        out_path,
    ]
    _run(args)
    return out_path


def burn_subtitles(input_path, srt_path, out_path, crf=VIDEO_CRF, preset=VIDEO_PRESET):
    """Render an SRT file into the video stream; audio is copied."""
    # the subtitles filter parses ':' and '\' in its argument
    escaped = srt_path.replace('\\', '\\\\').replace(':', '\\:').replace("'", "\\'")
    args = [
        current_app.config.get('FFMPEG_BIN', 'ffmpeg'),
        '-y',
        '-i', input_path,
        '-vf', f"subtitles='{escaped}'",
        '-c:v', 'libx264',
        '-preset', preset,
        '-crf', str(crf),
        '-pix_fmt', 'yuv420p',
        '-c:a', 'copy',
        '-movflags', '+faststart',
        out_path,
    ]
    _run(args)
    return out_path
