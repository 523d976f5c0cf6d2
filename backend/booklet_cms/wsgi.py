"""
WSGI config for booklet_cms project.
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'booklet_cms.settings')

application = get_wsgi_application()
