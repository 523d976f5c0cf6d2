from django.core.management.base import BaseCommand

from booklets.services import purge_expired_tokens


class Command(BaseCommand):
    help = 'Deletes booklet hand-off tokens that expired without being used.'

    def handle(self, *args, **kwargs):
        deleted = purge_expired_tokens()
        self.stdout.write(self.style.SUCCESS(f"Deleted {deleted} expired access tokens"))
