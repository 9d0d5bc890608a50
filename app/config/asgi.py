"""
ASGI entry point for the billing service.

Provided for ASGI servers; every view is synchronous and runs in Django's
thread-sensitive executor.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/asgi/
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_asgi_application()
