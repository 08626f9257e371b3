"""
Video to audio transcoding using ffmpeg.

The engine runs as a child process. It is polled rather than waited on so
that a wall-clock timeout and cooperative cancellation can both kill it.
"""

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path

from converter.service.config import get_ffmpeg_binary, get_transcode_timeout
from converter.service.errors import JobCancelled, TranscodeError, TranscodeTimeout

POLL_INTERVAL = 0.25

# ffmpeg prints the actual error last, so only the tail of stderr is kept
DIAGNOSTICS_TAIL = 4000


@dataclass(frozen=True)
class AudioProfile:
    """Target format for the transcoded artifact"""

    container: str
    codec: str
    bitrate: str
    extension: str


MP3_128K = AudioProfile(container='mp3', codec='libmp3lame', bitrate='128k', extension='.mp3')


def build_command(binary, input_path, output_path, profile=MP3_128K):
    """
    Build the ffmpeg command line for an audio-only conversion.

    Returns:
        list: argv for subprocess
    """
    return [
        binary,
        '-hide_banner',
        '-nostdin',
        '-y',  # Overwrite the empty placeholder left by allocation
        '-i', str(input_path),
        '-vn',  # Drop video streams
        '-acodec', profile.codec,
        '-b:a', profile.bitrate,
        '-f', profile.container,
        str(output_path),
    ]


def _kill(proc):
    """Kill the child and reap it so no zombie or open pipe is left behind"""
    try:
        proc.kill()
    except ProcessLookupError:
        pass
    try:
        _, stderr = proc.communicate(timeout=5)
    except subprocess.TimeoutExpired:
        stderr = b''
    return stderr or b''


def _tail(stderr):
    if isinstance(stderr, bytes):
        stderr = stderr.decode('utf-8', errors='replace')
    return (stderr or '').strip()[-DIAGNOSTICS_TAIL:]


def convert(input_path, output_path, profile=MP3_128K, timeout=None, cancel=None,
            binary=None, logger=None):
    """
    Transcode a staged video into an audio file.

    Args:
        input_path: Path to the downloaded source
        output_path: Path for the audio artifact
        profile: AudioProfile, fixed to MP3_128K by the pipeline
        timeout: Wall-clock limit in seconds (default from settings)
        cancel: Optional threading.Event; checked while the engine runs
        binary: ffmpeg executable (default from settings)
        logger: Optional callable(str) for logging

    Raises:
        TranscodeError: Engine missing, or exited non-zero
        TranscodeTimeout: Engine ran past the timeout and was killed
        JobCancelled: cancel was set and the engine was killed
    """
    def log(message):
        if logger:
            logger(message)

    input_path = Path(input_path)
    output_path = Path(output_path)
    if timeout is None:
        timeout = get_transcode_timeout()
    if binary is None:
        binary = get_ffmpeg_binary()

    cmd = build_command(binary, input_path, output_path, profile)
    log(f"Running: {' '.join(cmd)}")

    try:
        proc = subprocess.Popen(
            cmd,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        raise TranscodeError(f"Could not start {binary}: {e}", diagnostics=str(e)) from e

    deadline = time.monotonic() + timeout
    try:
        while True:
            try:
                _, stderr = proc.communicate(timeout=POLL_INTERVAL)
                break
            except subprocess.TimeoutExpired:
                if cancel is not None and cancel.is_set():
                    _kill(proc)
                    log("Transcode cancelled, engine killed")
                    raise JobCancelled("Transcode cancelled")
                if time.monotonic() >= deadline:
                    diagnostics = _tail(_kill(proc))
                    log(f"Transcode exceeded {timeout}s, engine killed")
                    raise TranscodeTimeout(
                        f"{binary} did not finish within {timeout} seconds",
                        returncode=proc.returncode,
                        diagnostics=diagnostics,
                    )
    except BaseException:
        # The engine must not outlive this call
        if proc.returncode is None:
            _kill(proc)
            log("Transcode interrupted, engine killed")
        raise

    diagnostics = _tail(stderr)
    if proc.returncode != 0:
        log(f"ffmpeg stderr: {diagnostics}")
        raise TranscodeError(
            f"{binary} failed with code {proc.returncode}",
            returncode=proc.returncode,
            diagnostics=diagnostics,
        )

    log(f"Transcoding complete: {output_path.name}")
