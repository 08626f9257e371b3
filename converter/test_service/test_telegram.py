"""
Tests for service/telegram.py
"""
import tempfile
from pathlib import Path
from unittest.mock import MagicMock

import requests
from django.test import TestCase, override_settings

from converter.service.fetch import TelegramFetcher
from converter.service.pipeline import FailureKind, Job, run_pipeline
from converter.service.telegram import TelegramAPIError, TelegramClient, redact_url


def api_response(payload=None, status_code=200, json_error=False):
    response = MagicMock()
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError('No JSON object could be decoded')
    else:
        response.json.return_value = payload
    return response


class TelegramClientTest(TestCase):

    def setUp(self):
        self.session = MagicMock()
        self.client = TelegramClient(
            token='123:ABC', api_base_url='https://api.example.test/', timeout=9, session=self.session
        )

    def test_urls(self):
        self.assertEqual(self.client.method_url('getMe'), 'https://api.example.test/bot123:ABC/getMe')
        self.assertEqual(
            self.client.file_url('/videos/file_3.mp4'),
            'https://api.example.test/file/bot123:ABC/videos/file_3.mp4',
        )

    @override_settings(CONVERTER_BOT_TOKEN='999:XYZ', CONVERTER_API_BASE_URL='https://tg.local',
                       CONVERTER_DOWNLOAD_TIMEOUT=12)
    def test_defaults_from_settings(self):
        client = TelegramClient(session=self.session)
        self.assertEqual(client.method_url('getMe'), 'https://tg.local/bot999:XYZ/getMe')
        self.assertEqual(client.timeout, 12.0)

    def test_call_returns_result(self):
        self.session.post.return_value = api_response({'ok': True, 'result': {'message_id': 5}})

        result = self.client.send_message(42, 'hello')

        self.assertEqual(result, {'message_id': 5})
        self.session.post.assert_called_once_with(
            'https://api.example.test/bot123:ABC/sendMessage',
            data={'chat_id': 42, 'text': 'hello'},
            files=None,
            timeout=9,
        )

    def test_ok_false_raises(self):
        self.session.post.return_value = api_response(
            {'ok': False, 'error_code': 400, 'description': 'Bad Request: message to edit not found'},
            status_code=400,
        )

        with self.assertRaises(TelegramAPIError) as ctx:
            self.client.edit_message_text(42, 7, 'done')

        self.assertEqual(ctx.exception.method, 'editMessageText')
        self.assertEqual(ctx.exception.error_code, 400)
        self.assertIn('message to edit not found', str(ctx.exception))

    def test_network_error_raises(self):
        self.session.post.side_effect = requests.ConnectionError('unreachable')

        with self.assertRaises(TelegramAPIError):
            self.client.delete_message(42, 7)

    def test_non_json_raises(self):
        self.session.post.return_value = api_response(status_code=502, json_error=True)

        with self.assertRaises(TelegramAPIError) as ctx:
            self.client.get_file('FILE')
        self.assertEqual(ctx.exception.error_code, 502)

    def test_send_audio_uploads_file(self):
        self.session.post.return_value = api_response({'ok': True, 'result': {'message_id': 8}})
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / 'job_output.mp3'
            path.write_bytes(b'ID3')

            self.client.send_audio(42, str(path), caption='done', title='Converted Audio',
                                   performer='Video to Audio Bot')

        kwargs = self.session.post.call_args.kwargs
        self.assertEqual(kwargs['data'], {
            'chat_id': 42,
            'caption': 'done',
            'title': 'Converted Audio',
            'performer': 'Video to Audio Bot',
        })
        name, _, mime = kwargs['files']['audio']
        self.assertEqual(name, 'job_output.mp3')
        self.assertEqual(mime, 'audio/mpeg')


class TokenRedactionTest(TestCase):
    """The bot token never leaks through error text or logs"""

    TOKEN = '123456:SECRETTOKEN'

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        override = override_settings(CONVERTER_STAGING_DIR=str(Path(tmp.name) / 'temp'))
        override.enable()
        self.addCleanup(override.disable)

        self.session = MagicMock()
        self.session.post.side_effect = requests.ConnectionError(
            "HTTPConnectionPool(host='127.0.0.1', port=9): Max retries exceeded with url: "
            f"/bot{self.TOKEN}/getFile (Caused by NewConnectionError('Connection refused'))"
        )
        self.client = TelegramClient(
            token=self.TOKEN, api_base_url='http://127.0.0.1:9', timeout=1, session=self.session
        )

    def test_network_error_text_is_redacted(self):
        with self.assertRaises(TelegramAPIError) as ctx:
            self.client.get_file('FILE')

        self.assertNotIn('SECRETTOKEN', str(ctx.exception))
        self.assertNotIn('SECRETTOKEN', ctx.exception.description)
        self.assertIn('/bot***/getFile', ctx.exception.description)

    def test_bare_token_is_redacted(self):
        self.assertEqual(self.client.redact(f'token {self.TOKEN} rejected'), 'token *** rejected')

    def test_redact_url(self):
        self.assertEqual(
            redact_url('https://api.telegram.org/file/bot123:ABC/videos/a.mp4'),
            'https://api.telegram.org/file/bot***/videos/a.mp4',
        )

    def test_pipeline_logs_never_contain_token(self):
        job = Job(source_ref='FILE', size_bytes=1024, mime_hint='video/mp4')

        with self.assertLogs('converter', level='INFO') as logs:
            result = run_pipeline(job, TelegramFetcher(self.client), MagicMock())

        self.assertEqual(result.failure, FailureKind.RESOLUTION_FAILED)
        self.assertNotIn('SECRETTOKEN', str(result.error))
        self.assertTrue(any('resolution-failed' in line for line in logs.output))
        self.assertFalse(any('SECRETTOKEN' in line for line in logs.output))
