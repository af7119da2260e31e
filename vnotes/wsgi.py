"""WSGI config for the vnotes project."""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "vnotes.settings")

application = get_wsgi_application()
