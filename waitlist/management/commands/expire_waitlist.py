from django.core.management.base import BaseCommand

from waitlist.tasks import expire_waitlist_offers


class Command(BaseCommand):
    help = "Expire waitlist offers past their deadline and promote the next entries."

    def handle(self, *args, **options):
        expired = expire_waitlist_offers()
        self.stdout.write(self.style.SUCCESS(f"Expired {expired} waitlist offer(s)"))
