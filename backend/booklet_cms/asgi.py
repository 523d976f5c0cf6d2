"""
ASGI config for booklet_cms project.

It exposes the ASGI callable as a module-level variable named ``application``.
"""

import os

from django.core.asgi import get_asgi_application
import socketio

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'booklet_cms.settings')

django_asgi_app = get_asgi_application()

from .sio import sio  # noqa: E402  settings must be configured first

# Wrap Django ASGI application with Socket.IO
application = socketio.ASGIApp(sio, django_asgi_app)
