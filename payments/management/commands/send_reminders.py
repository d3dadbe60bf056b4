from django.core.management.base import BaseCommand

from payments.tasks import send_payment_reminders


class Command(BaseCommand):
    help = "Send due-date, payment deadline and pre-retreat reminder emails."

    def handle(self, *args, **options):
        result = send_payment_reminders()
        self.stdout.write(
            self.style.SUCCESS(
                f"Sent {result['due']} due-date, {result['deadline']} deadline "
                f"and {result['pre_retreat']} pre-retreat reminders"
            )
        )
