"""
ASGI config for the AlgoAnswerHub project.

The views are async, so serve the project with an ASGI server.
"""

import os

from django.core.asgi import get_asgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings')

application = get_asgi_application()
