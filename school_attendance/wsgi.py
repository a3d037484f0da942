"""
WSGI config for the school_attendance project.

It exposes the WSGI callable as a module-level variable named ``application``.
"""

import os

from django.core.wsgi import get_wsgi_application

# WSGI is typically invoked by the production application server, so default to
# the hardened production settings. Local servers can export
# DJANGO_SETTINGS_MODULE=school_attendance.settings instead.
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "school_attendance.settings.production")

application = get_wsgi_application()
