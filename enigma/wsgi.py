import os

from django.apps import apps
from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "enigma.settings")

application = get_wsgi_application()

# Only the web server imports this module; workers and manage.py commands don't
apps.get_app_config("encoding").autostart()
