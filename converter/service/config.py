"""
Configuration adapter for conversion settings.

Centralizes access to Django settings so the service layer, the bot handlers
and the management commands all read the same values.
"""

from pathlib import Path

from django.conf import settings


def get_bot_token():
    """Get the Telegram bot token"""
    return settings.CONVERTER_BOT_TOKEN


def get_api_base_url():
    """Get the Telegram Bot API base URL (without trailing slash)"""
    return settings.CONVERTER_API_BASE_URL.rstrip('/')


def get_staging_dir():
    """Get the shared directory used for staged files"""
    return Path(settings.CONVERTER_STAGING_DIR)


def get_max_source_bytes():
    """
    Get the admission ceiling for source files.

    Telegram bots cannot fetch files above 20MB through getFile, which is
    where the default comes from.
    """
    return int(settings.CONVERTER_MAX_SOURCE_BYTES)


def get_transcode_timeout():
    """Get the wall-clock timeout for one ffmpeg run, in seconds"""
    return float(settings.CONVERTER_TRANSCODE_TIMEOUT)


def get_download_timeout():
    """Get the connect/read timeout for HTTP calls, in seconds"""
    return float(settings.CONVERTER_DOWNLOAD_TIMEOUT)


def get_job_deadline():
    """
    Get the overall deadline for one job, in seconds.

    Returns:
        float or None: None disables the deadline
    """
    deadline = settings.CONVERTER_JOB_DEADLINE
    if not deadline:
        return None
    return float(deadline)


def get_ffmpeg_binary():
    """Get the ffmpeg executable name or path"""
    return settings.CONVERTER_FFMPEG_BINARY


def get_stale_minutes():
    """Get the age after which a staged file counts as abandoned"""
    return int(settings.CONVERTER_STALE_MINUTES)
