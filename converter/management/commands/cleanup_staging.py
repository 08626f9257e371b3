"""
Management command to clean up abandoned staged files.

Jobs release their own files, so anything old in the staging directory was
left behind by a killed worker or a crashed process.
"""
from django.core.management.base import BaseCommand

from converter.service.config import get_staging_dir, get_stale_minutes
from converter.service.staging import find_stale, release


class Command(BaseCommand):
    help = 'Remove abandoned files from the staging directory'

    def add_arguments(self, parser):
        parser.add_argument(
            '--dry-run',
            action='store_true',
            help='Show what would be deleted without actually deleting'
        )
        parser.add_argument(
            '--max-age',
            type=int,
            default=None,
            help='Minutes before a staged file counts as abandoned (default: CONVERTER_STALE_MINUTES)'
        )

    def handle(self, *args, **options):
        dry_run = options['dry_run']
        max_age_minutes = options['max_age']
        if max_age_minutes is None:
            max_age_minutes = get_stale_minutes()

        staging_dir = get_staging_dir()
        stale = find_stale(max_age_minutes * 60, directory=staging_dir)

        if not stale:
            self.stdout.write(self.style.SUCCESS(
                f"No staged files older than {max_age_minutes} minutes in {staging_dir}"
            ))
            return

        total_size = 0
        for path in stale:
            try:
                size = path.stat().st_size
            except FileNotFoundError:
                size = 0
            total_size += size
            self.stdout.write(f"{path.name:50} | {size / (1024 * 1024):6.1f} MB")

        self.stdout.write(f"Total size: {total_size / (1024 * 1024):.1f} MB")

        if dry_run:
            self.stdout.write(self.style.WARNING(
                f"DRY RUN: Would delete {len(stale)} file{'s' if len(stale) != 1 else ''}"
            ))
            return

        deleted = sum(1 for path in stale if release(path))
        self.stdout.write(self.style.SUCCESS(
            f"✓ Deleted {deleted} of {len(stale)} file{'s' if len(stale) != 1 else ''}"
        ))
