"""
Minimal Telegram Bot API client.

Only the calls the converter needs: file lookup, text replies, audio upload,
message edits and deletes. Every call is a fallible remote call; nothing here
retries.
"""

import re
from pathlib import Path

import requests

from converter.service.config import get_api_base_url, get_bot_token, get_download_timeout


def redact_url(url):
    """Hide the bot token embedded in Bot API URLs"""
    return re.sub(r'/bot[^/]+/', '/bot***/', str(url))


class TelegramAPIError(Exception):
    """Raised when a Bot API call fails or answers ok=false"""

    def __init__(self, method, description, error_code=None):
        self.method = method
        self.description = description
        self.error_code = error_code
        super().__init__(f"{method} failed: {description}")


class TelegramClient:
    """Thin wrapper around the Bot API HTTP endpoints"""

    def __init__(self, token=None, api_base_url=None, timeout=None, session=None):
        self.token = token if token is not None else get_bot_token()
        self.api_base_url = (api_base_url or get_api_base_url()).rstrip('/')
        self.timeout = timeout if timeout is not None else get_download_timeout()
        self.session = session or requests.Session()

    def method_url(self, method):
        return f"{self.api_base_url}/bot{self.token}/{method}"

    def file_url(self, file_path):
        """Download URL for a file_path returned by getFile"""
        return f"{self.api_base_url}/file/bot{self.token}/{file_path.lstrip('/')}"

    def redact(self, text):
        """Strip the token from text that may quote a request URL"""
        text = redact_url(text)
        if self.token:
            text = text.replace(self.token, '***')
        return text

    def call(self, method, data=None, files=None):
        """
        Call a Bot API method.

        Args:
            method: Bot API method name, e.g. 'sendMessage'
            data: Form fields
            files: Multipart files for uploads

        Returns:
            The 'result' field of the response

        Raises:
            TelegramAPIError: On network failure, non-JSON answers, or ok=false
        """
        try:
            response = self.session.post(
                self.method_url(method), data=data, files=files, timeout=self.timeout
            )
        except requests.RequestException as e:
            raise TelegramAPIError(method, self.redact(e)) from e

        try:
            payload = response.json()
        except ValueError as e:
            raise TelegramAPIError(
                method, f"Non-JSON response (HTTP {response.status_code})", response.status_code
            ) from e

        if not payload.get('ok'):
            raise TelegramAPIError(
                method,
                payload.get('description') or f"HTTP {response.status_code}",
                payload.get('error_code', response.status_code),
            )
        return payload.get('result')

    def get_file(self, file_id):
        """Resolve a file_id to its metadata (file_path, file_size)"""
        return self.call('getFile', data={'file_id': file_id})

    def send_message(self, chat_id, text):
        return self.call('sendMessage', data={'chat_id': chat_id, 'text': text})

    def send_audio(self, chat_id, path, caption=None, title=None, performer=None):
        """Upload a local audio file to a chat"""
        path = Path(path)
        data = {'chat_id': chat_id}
        if caption:
            data['caption'] = caption
        if title:
            data['title'] = title
        if performer:
            data['performer'] = performer
        with open(path, 'rb') as f:
            return self.call('sendAudio', data=data, files={'audio': (path.name, f, 'audio/mpeg')})

    def edit_message_text(self, chat_id, message_id, text):
        return self.call(
            'editMessageText',
            data={'chat_id': chat_id, 'message_id': message_id, 'text': text},
        )

    def delete_message(self, chat_id, message_id):
        return self.call('deleteMessage', data={'chat_id': chat_id, 'message_id': message_id})
