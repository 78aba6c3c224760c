"""
WSGI config for store_backoffice project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "store_backoffice.settings")

application = get_wsgi_application()
