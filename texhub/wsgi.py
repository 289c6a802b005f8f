"""
WSGI config for texhub project.
"""
import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'texhub.settings')

application = get_wsgi_application()
