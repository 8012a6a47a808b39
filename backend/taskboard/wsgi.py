import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "taskboard.settings")

application = get_wsgi_application()

from tasks.startup import connect_store_or_exit  # noqa: E402

connect_store_or_exit()
