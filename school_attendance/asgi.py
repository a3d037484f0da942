"""ASGI entry point; the kiosk scan endpoints await detection work."""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "school_attendance.settings.production")

application = get_asgi_application()
