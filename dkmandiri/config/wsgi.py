"""
WSGI config for the DK Mandiri backend.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'dkmandiri.config.settings')

application = get_wsgi_application()
