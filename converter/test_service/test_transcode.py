"""
Tests for service/transcode.py

The engine boundary is exercised with short-lived Python child processes
standing in for ffmpeg, so no media engine is needed.
"""
import sys
import tempfile
import threading
import time
from pathlib import Path
from unittest.mock import patch

from django.test import TestCase, override_settings

from converter.service.errors import JobCancelled, TranscodeError, TranscodeTimeout
from converter.service.transcode import MP3_128K, AudioProfile, build_command, convert


def python_engine(script):
    """Replacement for build_command that runs a Python one-liner"""
    def build(binary, input_path, output_path, profile=MP3_128K):
        return [sys.executable, '-c', script, str(input_path), str(output_path)]
    return build


class InterruptingEvent:
    """Cancel event whose is_set() raises KeyboardInterrupt after a few polls"""

    def __init__(self, after_calls):
        self.after_calls = after_calls
        self.calls = 0

    def is_set(self):
        self.calls += 1
        if self.calls > self.after_calls:
            raise KeyboardInterrupt
        return False


class BuildCommandTest(TestCase):

    def test_mp3_profile(self):
        self.assertEqual(
            MP3_128K,
            AudioProfile(container='mp3', codec='libmp3lame', bitrate='128k', extension='.mp3'),
        )

    def test_command_line(self):
        cmd = build_command('ffmpeg', Path('/s/in.mp4'), Path('/s/out.mp3'))

        self.assertEqual(cmd[0], 'ffmpeg')
        self.assertIn('-nostdin', cmd)
        self.assertEqual(cmd[cmd.index('-i') + 1], '/s/in.mp4')
        self.assertEqual(cmd[cmd.index('-acodec') + 1], 'libmp3lame')
        self.assertEqual(cmd[cmd.index('-b:a') + 1], '128k')
        self.assertEqual(cmd[cmd.index('-f') + 1], 'mp3')
        self.assertIn('-vn', cmd)
        self.assertEqual(cmd[-1], '/s/out.mp3')


class ConvertTest(TestCase):

    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = Path(tmp.name)
        self.input_path = self.dir / 'job_input.mp4'
        self.input_path.write_bytes(b'video bytes')
        self.output_path = self.dir / 'job_output.mp3'

    def test_success_writes_output(self):
        script = 'import sys; open(sys.argv[2], "wb").write(b"ID3 audio")'
        with patch('converter.service.transcode.build_command', python_engine(script)):
            convert(self.input_path, self.output_path, timeout=30)

        self.assertEqual(self.output_path.read_bytes(), b'ID3 audio')

    def test_nonzero_exit_raises_with_diagnostics(self):
        script = (
            'import sys; sys.stderr.write("Invalid data found when processing input"); '
            'sys.exit(1)'
        )
        with patch('converter.service.transcode.build_command', python_engine(script)):
            with self.assertRaises(TranscodeError) as ctx:
                convert(self.input_path, self.output_path, timeout=30)

        self.assertNotIsInstance(ctx.exception, TranscodeTimeout)
        self.assertEqual(ctx.exception.returncode, 1)
        self.assertIn('Invalid data found', ctx.exception.diagnostics)

    def test_timeout_kills_engine(self):
        script = 'import time; time.sleep(60)'
        started = time.monotonic()
        with patch('converter.service.transcode.build_command', python_engine(script)):
            with self.assertRaises(TranscodeTimeout):
                convert(self.input_path, self.output_path, timeout=0.5)

        self.assertLess(time.monotonic() - started, 15)

    def test_cancel_kills_engine(self):
        cancel = threading.Event()
        timer = threading.Timer(0.3, cancel.set)
        timer.start()
        self.addCleanup(timer.cancel)

        script = 'import time; time.sleep(60)'
        with patch('converter.service.transcode.build_command', python_engine(script)):
            with self.assertRaises(JobCancelled):
                convert(self.input_path, self.output_path, timeout=30, cancel=cancel)

    def test_interrupt_kills_engine(self):
        cancel = InterruptingEvent(after_calls=3)
        script = 'import sys, time; time.sleep(1.0); open(sys.argv[2], "wb").write(b"late")'

        with patch('converter.service.transcode.build_command', python_engine(script)):
            with self.assertRaises(KeyboardInterrupt):
                convert(self.input_path, self.output_path, timeout=30, cancel=cancel)

        # Outlast the engine's sleep; a surviving child would write now
        time.sleep(1.5)
        self.assertFalse(self.output_path.exists())

    def test_missing_engine(self):
        with self.assertRaises(TranscodeError):
            convert(self.input_path, self.output_path, timeout=5, binary='/nonexistent/ffmpeg')

    @override_settings(CONVERTER_FFMPEG_BINARY='/opt/custom/ffmpeg', CONVERTER_TRANSCODE_TIMEOUT=1)
    @patch('converter.service.transcode.subprocess.Popen')
    def test_defaults_come_from_settings(self, mock_popen):
        mock_popen.return_value.communicate.return_value = (None, b'')
        mock_popen.return_value.returncode = 0

        convert(self.input_path, self.output_path)

        argv = mock_popen.call_args[0][0]
        self.assertEqual(argv[0], '/opt/custom/ffmpeg')
        self.assertEqual(argv[-1], str(self.output_path))

    def test_logger_receives_command(self):
        logs = []
        script = 'import sys; open(sys.argv[2], "wb").write(b"x")'
        with patch('converter.service.transcode.build_command', python_engine(script)):
            convert(self.input_path, self.output_path, timeout=30, logger=logs.append)

        self.assertTrue(any(line.startswith('Running:') for line in logs))
        self.assertTrue(any('complete' in line for line in logs))
