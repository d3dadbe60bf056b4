from django.core.management.base import BaseCommand

from payments.tasks import charge_due_installments, process_payment_deadlines


class Command(BaseCommand):
    help = "Charge due installments and auto-cancel bookings past their payment deadline."

    def add_arguments(self, parser):
        parser.add_argument("--skip-charges", action="store_true", help="Only enforce payment deadlines.")
        parser.add_argument("--skip-deadlines", action="store_true", help="Only charge due installments.")

    def handle(self, *args, **options):
        if not options["skip_charges"]:
            result = charge_due_installments()
            self.stdout.write(f"Installments: {result['charged']} charged, {result['failed']} not charged")
        if not options["skip_deadlines"]:
            result = process_payment_deadlines()
            self.stdout.write(f"Deadlines: {result['cancelled']} bookings cancelled, {result['errors']} errors")
        self.stdout.write(self.style.SUCCESS("Payment processing finished"))
