"""Typed job payloads.

Payloads are stored as JSON on the job row and decoded once, right after a
worker claims the job. A payload that cannot be decoded raises `BadPayload`,
which the queue treats as permanent.
"""
from dataclasses import dataclass
from typing import Union

from ..errors import BadPayload
from ..models.export_artifact import ExportType
from ..models.job import JobType


@dataclass(frozen=True)
class TrackPayload:
    track_id: int

    def to_json(self):
        return {'trackId': self.track_id}


@dataclass(frozen=True)
class ExportPayload:
    export_id: int
    type: str = None

    def to_json(self):
        out = {'exportId': self.export_id}
        if self.type:
            out['type'] = self.type
        return out


JobPayload = Union[TrackPayload, ExportPayload]


def _require_id(raw, field):
    value = raw.get(field)
    if value is None or isinstance(value, bool):
        raise BadPayload(f"payload_missing_{field}", details={'payload': raw})
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadPayload(f"payload_invalid_{field}", details={'payload': raw})


def decode_payload(job_type: str, raw) -> JobPayload:
    if not isinstance(raw, dict):
        raise BadPayload("payload must be an object", details={'payload': raw})

    if job_type in (JobType.TRANSCODE, JobType.ASR):
        return TrackPayload(track_id=_require_id(raw, 'trackId'))

    if job_type == JobType.EXPORT:
        export_type = raw.get('type')
        if export_type is not None and export_type not in ExportType.ALL:
            raise BadPayload(f"unknown export type {export_type!r}", details={'payload': raw})
        return ExportPayload(export_id=_require_id(raw, 'exportId'), type=export_type)

    raise BadPayload(f"unknown job type {job_type!r}")


def encode_payload(job_type: str, payload) -> dict:
    """Accept a payload dataclass or a raw dict and return the stored JSON."""
    if isinstance(payload, (TrackPayload, ExportPayload)):
        data = payload.to_json()
    else:
        data = dict(payload or {})
    # validate before it reaches the table so producers fail loudly
    decode_payload(job_type, data)
    return data
