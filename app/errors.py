"""Error taxonomy shared by upload finalization, job executors and the API.

Every error carries a stable `code` (persisted in job `last_error` and
returned to API clients), an HTTP `status` for the blueprint layer and a
`permanent` flag. Permanent errors can never succeed on retry, so the job
queue moves them straight to `dead` instead of spending the retry budget.
"""


class PipelineError(Exception):
    code = 'unexpected'
    status = 500
    permanent = False

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self):
        out = {'code': self.code, 'message': self.message}
        if self.details:
            out['details'] = self.details
        return out


class BadRequest(PipelineError):
    code = 'bad_request'
    status = 422


class BadPayload(PipelineError):
    """Job payload is malformed or misses a required field."""
    code = 'bad_payload'
    status = 422
    permanent = True


class NotFound(PipelineError):
    """Referenced track / upload / export does not exist."""
    code = 'not_found'
    status = 404
    permanent = True


class InvalidState(PipelineError):
    code = 'invalid_state'
    status = 409


class SizeMismatch(PipelineError):
    code = 'size_mismatch'
    status = 422


class TransportNotFound(PipelineError):
    """Resumable session bytes cannot be located on disk."""
    code = 'transport_not_found'
    status = 404


class StorageFailure(PipelineError):
    code = 'storage_failure'
    status = 502


class ToolFailure(PipelineError):
    """ffprobe / ffmpeg exited non-zero or could not be started."""
    code = 'tool_failure'
    status = 500


class DbFailure(PipelineError):
    code = 'db_failure'
    status = 503


class TranscriptMissing(PipelineError):
    code = 'transcript_missing'
    status = 409


def format_error(exc) -> str:
    code = getattr(exc, 'code', None)
    message = getattr(exc, 'message', None) or str(exc) or exc.__class__.__name__
    if isinstance(code, str) and code:
        return f"{code}: {message}"
    return f"{exc.__class__.__name__}: {message}"
