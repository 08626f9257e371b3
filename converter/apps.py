import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class ConverterConfig(AppConfig):
    name = 'converter'
    default_auto_field = 'django.db.models.BigAutoField'

    def ready(self):
        """Create the shared staging directory once per process"""
        from converter.service.staging import ensure_staging_dir

        try:
            directory = ensure_staging_dir()
        except OSError as e:
            # allocate() retries the mkdir, so a job will report the real error
            logger.warning("Could not create staging directory: %s", e)
            return
        logger.debug("Staging directory: %s", directory)
