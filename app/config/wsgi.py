"""
WSGI config for the payments service.

Provided for traditional deployments (gunicorn and similar).
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
