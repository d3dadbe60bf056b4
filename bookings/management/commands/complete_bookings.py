from django.core.management.base import BaseCommand

from bookings.tasks import complete_finished_bookings


class Command(BaseCommand):
    help = "Mark confirmed bookings as completed once their retreat has ended."

    def handle(self, *args, **options):
        completed = complete_finished_bookings()
        self.stdout.write(self.style.SUCCESS(f"Completed {completed} booking(s)"))
