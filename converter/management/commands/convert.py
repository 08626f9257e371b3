"""
Django management command for converting a video to audio locally.

This is a thin CLI wrapper around the conversion pipeline. It uses the same
staging directory, limits and ffmpeg settings as the bot.
"""
import json
import mimetypes
import shutil
from pathlib import Path

import requests
from django.core.management.base import BaseCommand, CommandError

from converter.service.config import get_download_timeout
from converter.service.constants import DEFAULT_VIDEO_MIME, VIDEO_EXTENSIONS
from converter.service.fetch import DirectFetcher, is_remote
from converter.service.pipeline import Job, run_pipeline


def probe_source(source):
    """
    Find the declared size and content type of a source before fetching it.

    Returns:
        tuple: (size_bytes or None, mime_type or None)
    """
    if is_remote(source):
        try:
            response = requests.head(source, allow_redirects=True, timeout=get_download_timeout())
        except requests.RequestException:
            return None, None
        length = response.headers.get('content-length')
        mime = (response.headers.get('content-type') or '').split(';')[0].strip() or None
        size = int(length) if length and length.isdigit() else None
        if mime in (None, 'application/octet-stream'):
            mime = guess_mime(source) or mime
        return size, mime

    path = Path(source).expanduser()
    size = path.stat().st_size if path.is_file() else None
    return size, guess_mime(source)


def guess_mime(source):
    mime, _ = mimetypes.guess_type(str(source))
    if mime:
        return mime
    if Path(str(source).split('?')[0]).suffix.lower() in VIDEO_EXTENSIONS:
        return DEFAULT_VIDEO_MIME
    return None


class Command(BaseCommand):
    help = 'Convert a video (URL or file path) to MP3 using the bot pipeline'

    def add_arguments(self, parser):
        parser.add_argument(
            'input',
            type=str,
            help='URL or file path to a video'
        )
        parser.add_argument(
            '--outdir',
            type=str,
            default='.',
            help='Output directory (default: current directory)'
        )
        parser.add_argument(
            '--job-id',
            type=str,
            default=None,
            help='Job id to use for staged files (default: random)'
        )
        parser.add_argument(
            '--mime',
            type=str,
            default=None,
            help='Override the detected content type'
        )
        parser.add_argument(
            '--json',
            action='store_true',
            help='Output result as JSON'
        )

    def handle(self, *args, **options):
        source = options['input']
        outdir = Path(options['outdir'])
        output_json = options['json']

        size, mime = probe_source(source)
        if options['mime']:
            mime = options['mime']

        job_kwargs = {'source_ref': source, 'size_bytes': size, 'mime_hint': mime}
        if options['job_id']:
            job_kwargs['job_id'] = options['job_id']
        try:
            job = Job(**job_kwargs)
        except ValueError as e:
            raise CommandError(str(e))

        outdir.mkdir(parents=True, exist_ok=True)
        saved = {}

        def deliver(output_path, job):
            stem = Path(source.split('?')[0]).stem or job.job_id
            target = outdir / f"{stem}{output_path.suffix}"
            shutil.copyfile(output_path, target)
            saved['path'] = target

        if options['verbosity'] > 1 and not output_json:
            self.stdout.write(self.style.NOTICE(f"Converting: {source} (job {job.job_id})"))

        result = run_pipeline(job, DirectFetcher(), deliver)

        if output_json:
            output = {
                'success': result.ok,
                'job_id': job.job_id,
                'input': source,
                'failure': result.failure.value if result.failure else None,
                'output_path': str(saved['path']) if 'path' in saved else None,
                'file_size': result.output_size,
            }
            self.stdout.write(json.dumps(output, indent=2))
            if not result.ok:
                raise CommandError(f"Conversion failed: {result.failure.value}")
            return

        if not result.ok:
            raise CommandError(f"Conversion failed: {result.failure.value} ({result.error})")

        self.stdout.write(self.style.SUCCESS(
            f"✓ Saved {saved['path']} ({result.output_size} bytes)"
        ))
