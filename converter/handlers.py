"""
Telegram update handling.

Turns an incoming update into replies: command texts, admission pre-flight
for media messages, and a pipeline run whose delivery step uploads the audio
back into the chat.
"""

import logging
import threading

from converter.service.config import get_job_deadline, get_max_source_bytes
from converter.service.constants import DEFAULT_VIDEO_MIME
from converter.service.errors import AdmissionRejected
from converter.service.fetch import TelegramFetcher
from converter.service.pipeline import FailureKind, Job, check_admission, failure_kind_for, run_pipeline
from converter.service.telegram import TelegramAPIError, TelegramClient

logger = logging.getLogger(__name__)

AUDIO_TITLE = 'Converted Audio'
AUDIO_PERFORMER = 'Video to Audio Bot'

START_TEXT = (
    '🎵 Welcome to Video to Audio Converter Bot! 🎵\n\n'
    'Send me any video file and I will convert it to audio for you!\n\n'
    'Supported formats: MP4, AVI, MOV, MKV, and more!'
)

HELP_TEXT = (
    'How to use this bot:\n\n'
    '1. Send any video file (up to {limit_mb}MB)\n'
    '2. Wait for processing\n'
    '3. Download your audio file!\n\n'
    'The bot will automatically convert your video to MP3 audio format.'
)

TEXT_HINT = (
    '📹 Send me a video file and I will convert it to audio for you!\n\n'
    'You can send videos as video messages or as document files.'
)

PROCESSING_TEXT = '🔄 Processing your video... Please wait.'
COMPLETE_TEXT = '✅ Conversion complete! Sending audio...'

GENERIC_FAILURE = (
    '❌ Sorry, there was an error processing your video. '
    'Please try again with a different video file.'
)

FAILURE_MESSAGES = {
    FailureKind.SIZE_TOO_LARGE: '❌ File size too large. Please send a video smaller than {limit_mb}MB.',
    FailureKind.NOT_VIDEO: '❌ Please send a video file for conversion.',
    FailureKind.RESOLUTION_FAILED: '❌ Could not access your file. Please send it again.',
    FailureKind.TRANSFER_FAILED: '❌ Downloading your video failed. Please try again.',
    FailureKind.TRANSCODE_FAILED: GENERIC_FAILURE,
    FailureKind.TRANSCODE_TIMEOUT: '❌ Your video took too long to convert. Please try a shorter video.',
    FailureKind.EMPTY_RESULT: '❌ The conversion produced no audio. Does your video have a sound track?',
    FailureKind.DELIVERY_FAILED: '❌ Sending the audio failed. Please try again.',
    FailureKind.DUPLICATE_JOB: '❌ This video is already being converted.',
    FailureKind.CANCELLED: '❌ Conversion was interrupted. Please try again.',
    FailureKind.UNKNOWN: GENERIC_FAILURE,
}


def _limit_mb():
    return get_max_source_bytes() // (1024 * 1024)


def failure_message(kind):
    """User-facing text for a failure category"""
    return FAILURE_MESSAGES.get(kind, GENERIC_FAILURE).format(limit_mb=_limit_mb())


def extract_media(message):
    """
    Find a convertible attachment in a message.

    Returns:
        dict with file_id, file_size, mime_type, or None
    """
    for key in ('video', 'video_note'):
        media = message.get(key)
        if media:
            return {
                'file_id': media['file_id'],
                'file_size': media.get('file_size'),
                'mime_type': media.get('mime_type') or DEFAULT_VIDEO_MIME,
            }

    document = message.get('document')
    if document:
        return {
            'file_id': document['file_id'],
            'file_size': document.get('file_size'),
            'mime_type': document.get('mime_type'),
        }
    return None


def handle_command(text, chat_id, client):
    command = text.split()[0].split('@')[0].lower()
    if command == '/start':
        client.send_message(chat_id, START_TEXT)
    elif command == '/help':
        client.send_message(chat_id, HELP_TEXT.format(limit_mb=_limit_mb()))
    else:
        client.send_message(chat_id, TEXT_HINT)


def convert_and_reply(job, chat_id, client, deadline=None):
    """
    Run the pipeline for an admitted job and report back to the chat.

    A timer sets the job's cancel event once the deadline passes, so a job
    never outlives the platform's request budget.

    Returns:
        PipelineResult
    """
    progress = client.send_message(chat_id, PROCESSING_TEXT)
    progress_id = progress['message_id']

    def deliver(output_path, job):
        client.edit_message_text(chat_id, progress_id, COMPLETE_TEXT)
        client.send_audio(chat_id, output_path, title=AUDIO_TITLE, performer=AUDIO_PERFORMER)

    cancel = threading.Event()
    if deadline is None:
        deadline = get_job_deadline()
    timer = None
    if deadline:
        timer = threading.Timer(deadline, cancel.set)
        timer.daemon = True
        timer.start()

    try:
        result = run_pipeline(job, TelegramFetcher(client), deliver, cancel=cancel)
    finally:
        if timer is not None:
            timer.cancel()

    if result.ok:
        try:
            client.delete_message(chat_id, progress_id)
        except TelegramAPIError as e:
            logger.warning("[%s] Could not delete progress message: %s", job.job_id, e)
        return result

    text = failure_message(result.failure)
    try:
        client.edit_message_text(chat_id, progress_id, text)
    except TelegramAPIError:
        client.send_message(chat_id, text)
    return result


def handle_update(update, client=None):
    """
    Handle one Telegram update.

    Returns:
        PipelineResult if a conversion ran, otherwise None
    """
    message = update.get('message') or update.get('channel_post')
    if not message:
        return None

    chat_id = message['chat']['id']
    client = client or TelegramClient()

    text = message.get('text')
    if text:
        handle_command(text, chat_id, client)
        return None

    media = extract_media(message)
    if media is None:
        return None

    job = Job(
        source_ref=media['file_id'],
        size_bytes=media['file_size'],
        mime_hint=media['mime_type'],
    )

    # Pre-flight: answer right away instead of staging anything
    try:
        check_admission(job)
    except AdmissionRejected as e:
        logger.info("Rejected update %s: %s", update.get('update_id'), e)
        client.send_message(chat_id, failure_message(failure_kind_for(e)))
        return None

    return convert_and_reply(job, chat_id, client)
