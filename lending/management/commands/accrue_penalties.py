from datetime import date

from django.core.management.base import BaseCommand, CommandError

from lending.ledger import refresh_overdue
from lending.models import Loan, LoanStatus


class Command(BaseCommand):
    help = "Flag overdue installments and recompute late penalties for disbursed loans"

    def add_arguments(self, parser):
        parser.add_argument("--as-of", dest="as_of", help="Evaluation date (YYYY-MM-DD), defaults to today")
        parser.add_argument("--tenant", dest="tenant_id", type=int, help="Limit the pass to one tenant")

    def handle(self, *args, **options):
        as_of = None
        if options.get("as_of"):
            try:
                as_of = date.fromisoformat(options["as_of"])
            except ValueError as exc:
                raise CommandError(f"Invalid --as-of date: {options['as_of']}") from exc

        loans = Loan.objects.filter(status=LoanStatus.DISBURSED)
        if options.get("tenant_id") is not None:
            loans = loans.filter(tenant_id=options["tenant_id"])

        flagged = 0
        for loan_id in loans.values_list("pk", flat=True):
            if refresh_overdue(loan_id, as_of):
                flagged += 1

        self.stdout.write(self.style.SUCCESS(f"Penalty pass completed: {flagged} loans with overdue installments."))
