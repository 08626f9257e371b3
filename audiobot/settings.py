"""
Django settings for the audiobot project.

Everything deployment-specific comes from environment variables so the same
settings work for the webhook process, the huey consumer and the CLI.
"""

import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.environ.get('DJANGO_SECRET_KEY', 'django-insecure-change-me')

DEBUG = env_bool('DJANGO_DEBUG', False)

ALLOWED_HOSTS = [h for h in os.environ.get('DJANGO_ALLOWED_HOSTS', '*').split(',') if h]

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'huey.contrib.djhuey',
    'converter',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'audiobot.urls'

WSGI_APPLICATION = 'audiobot.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.environ.get('DATABASE_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

USE_TZ = True
TIME_ZONE = 'UTC'

# Background tasks: one huey task per Telegram update.
# Run the consumer with thread workers, e.g. `manage.py run_huey -w 4 -k thread`.
HUEY = {
    'huey_class': 'huey.SqliteHuey',
    'name': 'audiobot',
    'filename': os.environ.get('HUEY_DB_PATH', str(BASE_DIR / 'huey.sqlite3')),
    'immediate': env_bool('HUEY_IMMEDIATE', DEBUG),
}

# Converter settings
CONVERTER_BOT_TOKEN = os.environ.get('BOT_TOKEN', '')
CONVERTER_API_BASE_URL = os.environ.get('TELEGRAM_API_BASE_URL', 'https://api.telegram.org')
CONVERTER_STAGING_DIR = os.environ.get('CONVERTER_STAGING_DIR', str(BASE_DIR / 'temp'))
CONVERTER_MAX_SOURCE_BYTES = int(float(os.environ.get('CONVERTER_MAX_SOURCE_MB', '20')) * 1024 * 1024)
CONVERTER_TRANSCODE_TIMEOUT = float(os.environ.get('CONVERTER_TRANSCODE_TIMEOUT', '120'))
CONVERTER_DOWNLOAD_TIMEOUT = float(os.environ.get('CONVERTER_DOWNLOAD_TIMEOUT', '30'))
CONVERTER_JOB_DEADLINE = float(os.environ.get('CONVERTER_JOB_DEADLINE', '290'))
CONVERTER_FFMPEG_BINARY = os.environ.get('CONVERTER_FFMPEG_BINARY', 'ffmpeg')
CONVERTER_STALE_MINUTES = int(os.environ.get('CONVERTER_STALE_MINUTES', '60'))

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'converter': {
            'handlers': ['console'],
            'level': os.environ.get('CONVERTER_LOG_LEVEL', 'INFO'),
        },
    },
}
