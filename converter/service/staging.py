"""
Transient file store.

All staged files live in one shared directory. Names are derived from the job
id and the file's role, so concurrent jobs never touch each other's files and
no locking is needed. Files are created exclusively at allocation time, which
makes a reused job id fail instead of silently sharing paths.
"""

import logging
import os
import re
import time
from pathlib import Path

from converter.service.config import get_staging_dir
from converter.service.constants import (
    INPUT_EXTENSION,
    OUTPUT_EXTENSION,
    JOB_ID_PATTERN,
    ROLE_INPUT,
    ROLE_OUTPUT,
)
from converter.service.errors import CleanupError, JobIdCollision

logger = logging.getLogger(__name__)

ROLES = (ROLE_INPUT, ROLE_OUTPUT)


def ensure_staging_dir(directory=None):
    """
    Create the staging directory if it does not exist yet.

    Safe to call any number of times, from any number of processes.

    Returns:
        Path to the staging directory
    """
    directory = Path(directory) if directory else get_staging_dir()
    directory.mkdir(parents=True, exist_ok=True)
    return directory


def job_prefix(job_id):
    """File name prefix shared by every staged file of a job"""
    return f"{job_id}_"


def staged_path(job_id, role, extension=None, directory=None):
    """
    Build the deterministic path for a job's staged file without creating it.

    Args:
        job_id: Job identifier, must be safe as a filename component
        role: 'input' or 'output'
        extension: File extension including the dot (default depends on role)
        directory: Staging directory (default from settings)

    Returns:
        Path
    """
    if role not in ROLES:
        raise ValueError(f"Unknown staged file role: {role!r}")
    if not job_id or not re.match(JOB_ID_PATTERN, job_id):
        raise ValueError(f"Job id is not safe for a file name: {job_id!r}")
    if extension is None:
        extension = INPUT_EXTENSION if role == ROLE_INPUT else OUTPUT_EXTENSION
    directory = Path(directory) if directory else get_staging_dir()
    return directory / f"{job_prefix(job_id)}{role}{extension}"


def allocate(job_id, role, extension=None, directory=None):
    """
    Reserve a staged file for a job.

    The file is created empty with O_EXCL so that a second job using the same
    id cannot get the same path.

    Raises:
        JobIdCollision: If the path is already taken
    """
    directory = ensure_staging_dir(directory)
    path = staged_path(job_id, role, extension=extension, directory=directory)
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o600)
    except FileExistsError as e:
        raise JobIdCollision(f"Staged file already exists: {path.name}") from e
    os.close(fd)
    return path


def release(path):
    """
    Delete a staged file.

    A missing file is fine. Any other failure is logged and swallowed so that
    releasing one file never prevents releasing its siblings.

    Returns:
        bool: True if a file was removed
    """
    path = Path(path)
    try:
        path.unlink()
        return True
    except FileNotFoundError:
        return False
    except OSError as e:
        error = CleanupError(f"Could not remove {path}: {e}")
        logger.warning("%s", error)
        return False


def sweep_orphans(prefixes, directory=None):
    """
    Remove leftover files whose names start with one of the given prefixes.

    Only used on error recovery, after an unexpected fault. Callers pass
    per-job prefixes so live sibling jobs are left alone.

    Returns:
        int: Number of files removed
    """
    directory = Path(directory) if directory else get_staging_dir()
    prefixes = tuple(p for p in prefixes if p)
    if not prefixes or not directory.exists():
        return 0

    removed = 0
    for entry in directory.iterdir():
        if entry.is_file() and entry.name.startswith(prefixes):
            if release(entry):
                removed += 1
    if removed:
        logger.info("Swept %d orphaned staged file(s) for %s", removed, ', '.join(prefixes))
    return removed


def find_stale(max_age_seconds, directory=None, now=None):
    """
    List staged files older than max_age_seconds.

    Returns:
        list of Path, oldest first
    """
    directory = Path(directory) if directory else get_staging_dir()
    if not directory.exists():
        return []
    now = now if now is not None else time.time()

    stale = []
    for entry in directory.iterdir():
        try:
            mtime = entry.stat().st_mtime
        except FileNotFoundError:
            # Released by its job while we were scanning
            continue
        if entry.is_file() and now - mtime > max_age_seconds:
            stale.append((mtime, entry))
    return [entry for _, entry in sorted(stale)]


class StagedFiles:
    """
    Scope owning every staged file of one job.

    Each allocated path is registered for release the moment it is created.
    Leaving the scope releases all of them exactly once, whatever the exit
    path, and lets the original exception propagate.

    Usage:
        with StagedFiles(job_id) as files:
            input_path = files.allocate('input')
            ...
    """

    def __init__(self, job_id, directory=None):
        self.job_id = job_id
        self.directory = directory
        self.paths = []
        self.released = False

    def allocate(self, role, extension=None):
        path = allocate(self.job_id, role, extension=extension, directory=self.directory)
        self.paths.append(path)
        return path

    def release_all(self):
        """Release every registered path. Subsequent calls do nothing."""
        if self.released:
            return
        self.released = True
        for path in self.paths:
            release(path)

    def remaining(self):
        """Registered paths that still exist on disk"""
        return [p for p in self.paths if p.exists()]

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release_all()
        return False
