from django.conf import settings
from django.core.management import call_command
from django.core.management.base import BaseCommand

from tasks.startup import connect_store_or_exit


class Command(BaseCommand):
    help = "Check the task store connection, then run the development server on $PORT."

    def add_arguments(self, parser):
        parser.add_argument("--host", default="0.0.0.0")
        parser.add_argument("--port", type=int, default=None)

    def handle(self, *args, **options):
        connect_store_or_exit()
        port = options["port"] or settings.PORT
        self.stdout.write(f"Server running on port {port}")
        call_command("runserver", f"{options['host']}:{port}")
