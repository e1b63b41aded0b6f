"""Transcription capability behind the ASR executor.

`transcribe(storage_key, duration_ms)` returns an ordered, non-overlapping
list of `Segment`s. Providers:

- ``deepgram``: posts the audio to the Deepgram REST API with `requests` and
  turns `utterances` (or word-level results) into segments.
- ``placeholder``: no network; splits the known duration into two fixed
  segments so the rest of the pipeline can run on a dev machine.
"""
import mimetypes
from dataclasses import dataclass
from typing import List, Optional

from flask import current_app
import requests

from ..errors import PipelineError
from . import storage

DEEPGRAM_URL = 'https://api.deepgram.com/v1/listen'


class TranscriptionFailure(PipelineError):
    code = 'asr_failure'
    status = 502


@dataclass
class Segment:
    start_ms: int
    end_ms: int
    text: str
    speaker: Optional[str] = None
    confidence: Optional[float] = None


def normalize_segments(segments: List[Segment]) -> List[Segment]:
    """Sort by start, drop empty text and clip overlaps against the previous end."""
    out = []
    last_end = 0
    for seg in sorted(segments, key=lambda s: (s.start_ms, s.end_ms)):
        text = (seg.text or '').strip()
        if not text:
            continue
        start = max(int(seg.start_ms), last_end)
        end = max(int(seg.end_ms), start)
        out.append(Segment(start, end, text, seg.speaker, seg.confidence))
        last_end = end
    return out


def _placeholder(duration_ms):
    total = duration_ms or 10_000
    first_end = min(total, 5_000)
    return [
        Segment(0, first_end, 'Placeholder transcript segment 1.'),
        Segment(first_end, total, 'Placeholder transcript segment 2.'),
    ]


def _deepgram_params():
    opts = current_app.config.get('DEEPGRAM_OPTIONS', {}) or {}
    params = {}
    if opts.get('punctuate', True):
        params['punctuate'] = 'true'
    if opts.get('diarize') or opts.get('diarization'):
        params['diarize'] = 'true'
    if opts.get('utterances', True):
        params['utterances'] = 'true'
    if opts.get('language'):
        params['language'] = opts['language']
    return params


def _ms(seconds):
    return int(round(float(seconds or 0) * 1000))


def segments_from_deepgram(raw) -> List[Segment]:
    """Build segments from a Deepgram response (utterances first, words as fallback)."""
    utterances = raw.get('utterances') or raw.get('results', {}).get('utterances')
    if utterances:
        return [
            Segment(
                start_ms=_ms(u.get('start')),
                end_ms=_ms(u.get('end')),
                text=u.get('transcript') or u.get('text') or '',
                speaker=None if u.get('speaker') is None else str(u.get('speaker')),
                confidence=u.get('confidence'),
            )
            for u in utterances
        ]

    try:
        words = raw['results']['channels'][0]['alternatives'][0].get('words') or []
    except (KeyError, IndexError, TypeError):
        words = []

    # group contiguous words by speaker and small gaps into segments
    gap_thresh = current_app.config.get('DG_WORD_GAP_THRESHOLD', 0.35)
    segments = []
    current = None
    for w in words:
        spk = w.get('speaker')
        start, end = w.get('start') or 0, w.get('end') or 0
        text = w.get('punctuated_word') or w.get('word') or ''
        if current is not None and spk == current['speaker'] and start - current['end'] <= gap_thresh:
            current['end'] = end
            current['words'].append(text)
            continue
        if current is not None:
            segments.append(current)
        current = {'speaker': spk, 'start': start, 'end': end, 'words': [text]}
    if current is not None:
        segments.append(current)

    return [
        Segment(_ms(s['start']), _ms(s['end']), ' '.join(s['words']),
                None if s['speaker'] is None else str(s['speaker']))
        for s in segments
    ]


def _deepgram(storage_key):
    key = current_app.config.get('DEEPGRAM_API_KEY')
    if not key:
        raise TranscriptionFailure('DEEPGRAM_API_KEY is not configured')
    content_type = mimetypes.guess_type(storage_key)[0] or 'audio/wav'
    with storage.local_copy(storage_key) as path:
        with open(path, 'rb') as f:
            try:
                r = requests.post(
                    DEEPGRAM_URL,
                    params=_deepgram_params(),
                    headers={'Authorization': f'Token {key}', 'Content-Type': content_type},
                    data=f,
                    timeout=600,
                )
                r.raise_for_status()
                raw = r.json()
            except (requests.RequestException, ValueError) as e:
                raise TranscriptionFailure(f"Deepgram transcription failed: {e}") from e
    return segments_from_deepgram(raw)


def transcribe(storage_key, duration_ms=None) -> List[Segment]:
    provider = current_app.config.get('ASR_PROVIDER', 'placeholder')
    if provider == 'deepgram':
        segments = _deepgram(storage_key)
    elif provider == 'placeholder':
        current_app.logger.warning('ASR_PROVIDER=placeholder; writing placeholder segments for %s', storage_key)
        segments = _placeholder(duration_ms)
    else:
        raise TranscriptionFailure(f"unknown ASR provider {provider!r}")
    return normalize_segments(segments)
