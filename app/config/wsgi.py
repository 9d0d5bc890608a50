"""
WSGI entry point for the billing service.

The service is synchronous: API views and the Razorpay webhook endpoint run
under any WSGI server (gunicorn in deployment, runserver locally).

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
