"""
Error taxonomy for the conversion pipeline.

Every stage raises one of these. The orchestrator maps them to a FailureKind
for the caller; the exception itself (with its diagnostics) only goes to logs.
"""


class PipelineError(Exception):
    """Base class for pipeline failures"""


class AdmissionRejected(PipelineError):
    """Job rejected before anything was staged (size or type)"""

    TOO_LARGE = 'too_large'
    NOT_VIDEO = 'not_video'

    def __init__(self, reason, message=''):
        self.reason = reason
        super().__init__(message or reason)


class ResolutionError(PipelineError):
    """File reference is invalid, expired, or could not be resolved"""


class TransferError(PipelineError):
    """Network or stream fault while downloading"""


class TranscodeError(PipelineError):
    """Transcoding engine exited non-zero or could not be started"""

    def __init__(self, message, returncode=None, diagnostics=''):
        self.returncode = returncode
        self.diagnostics = diagnostics
        super().__init__(message)


class TranscodeTimeout(TranscodeError):
    """Transcoding engine ran past its wall-clock timeout and was killed"""


class EmptyOutputError(PipelineError):
    """Transcoded output is missing or has zero length"""


class DeliveryError(PipelineError):
    """Delivering the result to the caller failed"""


class JobIdCollision(PipelineError):
    """A staged file for this job id already exists"""


class JobCancelled(PipelineError):
    """Job was cancelled by its surrounding context"""


class CleanupError(PipelineError):
    """A staged file could not be removed. Logged, never propagated."""
