"""
WSGI entry point for the audiobot webhook.

Serverless hosts and Passenger both import this module and call the
'application' callable for each request.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "audiobot.settings")

application = get_wsgi_application()
