"""
Result validation.

The artifact must exist and be non-empty. The audio
stream itself is not parsed.
"""

from pathlib import Path

from converter.service.errors import EmptyOutputError


def validate_output(path):
    """
    Check that a transcoded artifact is deliverable.

    Returns:
        int: Size of the file in bytes

    Raises:
        EmptyOutputError: If the file is absent or has zero length
    """
    path = Path(path)
    try:
        size = path.stat().st_size
    except FileNotFoundError:
        raise EmptyOutputError(f"Output file missing: {path.name}")
    if size == 0:
        raise EmptyOutputError(f"Conversion failed - empty output file: {path.name}")
    return size
