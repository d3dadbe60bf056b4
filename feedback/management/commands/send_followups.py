from django.core.management.base import BaseCommand

from feedback.tasks import send_post_retreat_followups


class Command(BaseCommand):
    help = "Ask guests for feedback a few days after their retreat has ended."

    def handle(self, *args, **options):
        sent = send_post_retreat_followups()
        self.stdout.write(self.style.SUCCESS(f"Sent {sent} follow-up email(s)"))
