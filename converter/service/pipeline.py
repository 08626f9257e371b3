"""
Pipeline orchestrator.

Runs one conversion job through admission, fetch, transcode, validation and
delivery. Every staged file is owned by a single StagedFiles scope, so cleanup
happens exactly once on every exit path no matter which stage failed.

The caller only ever sees a FailureKind; diagnostics are logged with the job id.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional

from nanoid import generate

from converter.service.config import get_max_source_bytes
from converter.service.constants import (
    JOB_ID_PATTERN,
    NANOID_ALPHABET,
    NANOID_SIZE,
    ROLE_INPUT,
    ROLE_OUTPUT,
    VIDEO_MIME_PREFIX,
)
from converter.service.errors import (
    AdmissionRejected,
    DeliveryError,
    EmptyOutputError,
    JobCancelled,
    JobIdCollision,
    PipelineError,
    ResolutionError,
    TranscodeError,
    TranscodeTimeout,
    TransferError,
)
from converter.service.staging import StagedFiles, job_prefix, sweep_orphans
from converter.service.transcode import MP3_128K, convert
from converter.service.validate import validate_output

logger = logging.getLogger(__name__)


class JobStatus(Enum):
    ADMITTED = 'admitted'
    FETCHING = 'fetching'
    TRANSCODING = 'transcoding'
    VALIDATING = 'validating'
    DELIVERING = 'delivering'
    CLEANED = 'cleaned'
    FAILED = 'failed'


class FailureKind(Enum):
    """Caller-facing failure categories"""

    SIZE_TOO_LARGE = 'size-too-large'
    NOT_VIDEO = 'not-video'
    RESOLUTION_FAILED = 'resolution-failed'
    TRANSFER_FAILED = 'transfer-failed'
    TRANSCODE_FAILED = 'transcode-failed'
    TRANSCODE_TIMEOUT = 'transcode-timeout'
    EMPTY_RESULT = 'empty-result'
    DELIVERY_FAILED = 'delivery-failed'
    DUPLICATE_JOB = 'duplicate-job'
    CANCELLED = 'cancelled'
    UNKNOWN = 'unknown'


def generate_job_id():
    """Generate NanoID with A-Z a-z 0-9 alphabet"""
    return generate(NANOID_ALPHABET, size=NANOID_SIZE)


@dataclass
class Job:
    """One conversion request, from admission to cleanup"""

    source_ref: str
    size_bytes: Optional[int] = None
    mime_hint: Optional[str] = None
    job_id: str = field(default_factory=generate_job_id)
    status: Optional[JobStatus] = None
    failure: Optional[FailureKind] = None
    history: list = field(default_factory=list)

    def __post_init__(self):
        if not re.match(JOB_ID_PATTERN, self.job_id or ''):
            raise ValueError(f"Invalid job id: {self.job_id!r}")

    def advance(self, status):
        self.status = status
        self.history.append(status)

    def fail(self, kind):
        self.failure = kind
        self.advance(JobStatus.FAILED)

    @property
    def finished(self):
        return self.status == JobStatus.CLEANED


@dataclass
class PipelineResult:
    """Outcome of run_pipeline"""

    job: Job
    output_path: Optional[Path] = None
    output_size: Optional[int] = None
    error: Optional[BaseException] = None

    @property
    def ok(self):
        return self.job.failure is None

    @property
    def failure(self):
        return self.job.failure


def failure_kind_for(exc):
    """Map an exception raised by a stage to its caller-facing category"""
    if isinstance(exc, AdmissionRejected):
        if exc.reason == AdmissionRejected.TOO_LARGE:
            return FailureKind.SIZE_TOO_LARGE
        return FailureKind.NOT_VIDEO
    if isinstance(exc, ResolutionError):
        return FailureKind.RESOLUTION_FAILED
    if isinstance(exc, TransferError):
        return FailureKind.TRANSFER_FAILED
    # TranscodeTimeout is a TranscodeError, so it goes first
    if isinstance(exc, TranscodeTimeout):
        return FailureKind.TRANSCODE_TIMEOUT
    if isinstance(exc, TranscodeError):
        return FailureKind.TRANSCODE_FAILED
    if isinstance(exc, EmptyOutputError):
        return FailureKind.EMPTY_RESULT
    if isinstance(exc, DeliveryError):
        return FailureKind.DELIVERY_FAILED
    if isinstance(exc, JobIdCollision):
        return FailureKind.DUPLICATE_JOB
    if isinstance(exc, JobCancelled):
        return FailureKind.CANCELLED
    return FailureKind.UNKNOWN


def check_admission(job, max_bytes=None):
    """
    Pre-flight checks that run before anything is staged.

    Raises:
        AdmissionRejected: With reason 'not_video' or 'too_large'
    """
    if max_bytes is None:
        max_bytes = get_max_source_bytes()

    if not (job.mime_hint or '').lower().startswith(VIDEO_MIME_PREFIX):
        raise AdmissionRejected(
            AdmissionRejected.NOT_VIDEO, f"Not a video: {job.mime_hint or 'unknown type'}"
        )
    if job.size_bytes and job.size_bytes > max_bytes:
        raise AdmissionRejected(
            AdmissionRejected.TOO_LARGE,
            f"Declared size {job.size_bytes} exceeds the {max_bytes} byte limit",
        )


def _job_logger(job):
    def log(message):
        logger.info("[%s] %s", job.job_id, message)
    return log


def _raise_if_cancelled(cancel):
    if cancel is not None and cancel.is_set():
        raise JobCancelled("Job cancelled")


def _record_failure(job, exc, result):
    stage = job.status.value if job.status else 'admission'
    kind = failure_kind_for(exc)
    job.fail(kind)
    result.error = exc

    if kind == FailureKind.UNKNOWN:
        logger.exception("[%s] Unexpected error during %s", job.job_id, stage)
    elif isinstance(exc, TranscodeError) and exc.diagnostics:
        logger.warning(
            "[%s] %s during %s: %s\n%s", job.job_id, kind.value, stage, exc, exc.diagnostics
        )
    else:
        logger.warning("[%s] %s during %s: %s", job.job_id, kind.value, stage, exc)


def _run_stages(job, files, fetcher, deliver, transcode, cancel, max_bytes, timeout, profile, log):
    _raise_if_cancelled(cancel)
    job.advance(JobStatus.FETCHING)

    # Both paths are reserved up front so a reused job id fails before any transfer
    input_path = files.allocate(ROLE_INPUT)
    output_path = files.allocate(ROLE_OUTPUT, extension=profile.extension)

    url = fetcher.resolve(job.source_ref)
    fetcher.download(url, input_path, max_bytes=max_bytes, cancel=cancel, logger=log)

    # The ceiling applies to what actually landed, not only to the declared size
    actual_size = input_path.stat().st_size
    if max_bytes and actual_size > max_bytes:
        raise TransferError(f"Downloaded {actual_size} bytes, limit is {max_bytes}")
    if actual_size == 0:
        raise TransferError("Downloaded file is empty")

    _raise_if_cancelled(cancel)
    job.advance(JobStatus.TRANSCODING)
    transcode(input_path, output_path, profile=profile, timeout=timeout, cancel=cancel, logger=log)

    job.advance(JobStatus.VALIDATING)
    output_size = validate_output(output_path)
    log(f"Output validated: {output_size} bytes")

    _raise_if_cancelled(cancel)
    job.advance(JobStatus.DELIVERING)
    try:
        deliver(output_path, job)
    except PipelineError:
        raise
    except Exception as e:
        raise DeliveryError(f"Delivery failed: {e}") from e

    return output_path, output_size


def run_pipeline(job, fetcher, deliver, transcode=convert, cancel=None, max_bytes=None,
                 timeout=None, profile=MP3_128K, staging_dir=None):
    """
    Convert one job's source video to audio and hand the result to deliver().

    Args:
        job: Job to run
        fetcher: Object with resolve(ref) -> url and
            download(url, out_path, max_bytes=, cancel=, logger=)
        deliver: Callable(output_path, job), called while the output still exists
        transcode: Callable with the signature of transcode.convert
        cancel: Optional threading.Event for cooperative cancellation
        max_bytes: Admission ceiling (default from settings)
        timeout: Transcode timeout in seconds (default from settings)
        profile: Target AudioProfile
        staging_dir: Staging directory (default from settings)

    Returns:
        PipelineResult. Staged files, including output_path, are gone from
        disk by the time this returns.
    """
    log = _job_logger(job)
    result = PipelineResult(job=job)
    if max_bytes is None:
        max_bytes = get_max_source_bytes()

    try:
        check_admission(job, max_bytes)
    except AdmissionRejected as e:
        # Nothing was staged, so there is nothing to clean up
        _record_failure(job, e, result)
        job.advance(JobStatus.CLEANED)
        return result

    job.advance(JobStatus.ADMITTED)
    log(f"Admitted {job.source_ref} ({job.size_bytes or 'unknown'} bytes, {job.mime_hint})")

    unexpected = False
    try:
        with StagedFiles(job.job_id, directory=staging_dir) as files:
            try:
                result.output_path, result.output_size = _run_stages(
                    job, files, fetcher, deliver, transcode, cancel,
                    max_bytes, timeout, profile, log,
                )
            except Exception as e:
                unexpected = not isinstance(e, PipelineError)
                _record_failure(job, e, result)
            except BaseException:
                job.fail(FailureKind.CANCELLED)
                logger.warning("[%s] Interrupted during %s", job.job_id, job.history[-2].value)
                raise
    finally:
        if unexpected:
            sweep_orphans([job_prefix(job.job_id)], directory=staging_dir)
        job.advance(JobStatus.CLEANED)

    if result.ok:
        log(f"Completed: {result.output_size} bytes delivered")
    return result
