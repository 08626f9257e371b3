"""
Remote fetcher.

Resolves an opaque file reference to a downloadable location, then streams the
bytes into a staged file. Partial files are never removed here: whoever owns
the staged path is responsible for releasing it.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import requests

from converter.service.config import get_download_timeout
from converter.service.constants import DOWNLOAD_CHUNK_SIZE
from converter.service.errors import JobCancelled, ResolutionError, TransferError
from converter.service.telegram import TelegramAPIError, TelegramClient, redact_url


@dataclass
class DownloadedFileInfo:
    """Information about a downloaded file"""

    path: Path
    file_size: int
    expected_size: Optional[int] = None
    mime_type: Optional[str] = None


def is_remote(ref):
    return str(ref).startswith(('http://', 'https://'))


def _copy_chunks(chunks, out_path, max_bytes=None, cancel=None):
    """Write an iterable of byte chunks, enforcing the size ceiling and cancellation"""
    written = 0
    with open(out_path, 'wb') as f:
        for chunk in chunks:
            if cancel is not None and cancel.is_set():
                raise JobCancelled("Download cancelled")
            if not chunk:
                continue
            written += len(chunk)
            if max_bytes and written > max_bytes:
                raise TransferError(
                    f"Source exceeds the {max_bytes} byte limit (received {written} bytes so far)"
                )
            f.write(chunk)
    return written


def _read_local(path, chunk_size):
    with open(path, 'rb') as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                return
            yield chunk


def download_stream(url, out_path, max_bytes=None, cancel=None, timeout=None, logger=None):
    """
    Stream a remote (or local) file to out_path without buffering it in memory.

    Args:
        url: http(s) URL or local file path
        out_path: Staged destination path (Path object or str)
        max_bytes: Abort once more than this many bytes arrived
        cancel: Optional threading.Event; checked between chunks
        timeout: HTTP connect/read timeout in seconds (default from settings)
        logger: Optional callable(str) for logging

    Returns:
        DownloadedFileInfo

    Raises:
        TransferError: Network fault, non-success status, premature close, or
            size ceiling exceeded
        JobCancelled: If cancel was set mid-transfer
    """

    def log(message):
        if logger:
            logger(message)

    out_path = Path(out_path)

    if not is_remote(url):
        source = Path(url)
        log(f"Copying from: {source}")
        if not source.is_file():
            raise TransferError(f"Local source not found: {source}")
        try:
            written = _copy_chunks(
                _read_local(source, DOWNLOAD_CHUNK_SIZE), out_path, max_bytes=max_bytes, cancel=cancel
            )
        except OSError as e:
            raise TransferError(f"Copy failed: {e}") from e
        log(f"Copied {written} bytes")
        return DownloadedFileInfo(path=out_path, file_size=written, expected_size=written)

    if timeout is None:
        timeout = get_download_timeout()

    log(f"Downloading from: {redact_url(url)}")
    log(f"Saving to: {out_path}")

    try:
        response = requests.get(url, stream=True, timeout=timeout)
    except requests.RequestException as e:
        raise TransferError(f"Request failed: {redact_url(e)}") from e

    with response:
        try:
            response.raise_for_status()
        except requests.HTTPError as e:
            raise TransferError(f"Download failed with HTTP {response.status_code}") from e

        content_length = response.headers.get('content-length')
        expected = int(content_length) if content_length and content_length.isdigit() else None
        mime_type = response.headers.get('content-type')

        try:
            written = _copy_chunks(
                response.iter_content(chunk_size=DOWNLOAD_CHUNK_SIZE),
                out_path,
                max_bytes=max_bytes,
                cancel=cancel,
            )
        except requests.RequestException as e:
            raise TransferError(f"Stream interrupted: {redact_url(e)}") from e
        except OSError as e:
            raise TransferError(f"Could not write {out_path.name}: {e}") from e

    if expected is not None and written < expected:
        raise TransferError(f"Stream closed early: received {written} of {expected} bytes")

    log(f"Downloaded {written} bytes")

    return DownloadedFileInfo(
        path=out_path, file_size=written, expected_size=expected, mime_type=mime_type
    )


class TelegramFetcher:
    """Fetches files referenced by Telegram file_id"""

    def __init__(self, client=None):
        self.client = client or TelegramClient()

    def resolve(self, file_id):
        """
        Turn a file_id into a download URL via getFile.

        Raises:
            ResolutionError: If the reference is invalid, expired, or the
                lookup itself failed
        """
        try:
            info = self.client.get_file(file_id)
        except TelegramAPIError as e:
            raise ResolutionError(f"getFile failed for {file_id}: {e.description}") from e

        file_path = (info or {}).get('file_path')
        if not file_path:
            raise ResolutionError(f"getFile returned no file_path for {file_id}")
        return self.client.file_url(file_path)

    def download(self, url, out_path, max_bytes=None, cancel=None, logger=None):
        return download_stream(
            url,
            out_path,
            max_bytes=max_bytes,
            cancel=cancel,
            timeout=self.client.timeout,
            logger=logger,
        )


class DirectFetcher:
    """Fetches plain http(s) URLs and local files (used by the CLI)"""

    def __init__(self, timeout=None):
        self.timeout = timeout

    def resolve(self, ref):
        ref = str(ref)
        if is_remote(ref):
            return ref
        if ref.startswith('file://'):
            ref = ref[len('file://'):]
        path = Path(ref).expanduser()
        if path.is_file():
            return str(path.absolute())
        raise ResolutionError(f"Not a URL or an existing file: {ref}")

    def download(self, url, out_path, max_bytes=None, cancel=None, logger=None):
        return download_stream(
            url, out_path, max_bytes=max_bytes, cancel=cancel, timeout=self.timeout, logger=logger
        )
