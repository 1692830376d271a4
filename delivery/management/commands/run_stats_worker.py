from django.conf import settings
from django.core.management.base import BaseCommand

from delivery.loop import run_loop
from delivery.stats import StatsWorker


class Command(BaseCommand):
    help = "Reconcile provider delivery logs into the event ledger and complete exhausted campaigns"

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single tick and exit")

    def handle(self, *args, **options):
        worker = StatsWorker()
        if not worker.client.configured:
            self.stdout.write(self.style.WARNING("DELIVERY_LOGS_TOKEN not set; log polling disabled"))
        try:
            result = run_loop(
                "stats worker",
                worker.tick,
                interval=settings.STATS_TICK_SECONDS,
                heartbeat_interval=settings.STATS_HEARTBEAT_SECONDS,
                once=options["once"],
            )
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING("Stats worker stopped"))
            return

        result = result or {}
        self.stdout.write(
            self.style.SUCCESS(
                f"Stats tick complete: {result.get('completed', 0)} completed, "
                f"{result.get('inserted', 0)} events recorded"
            )
        )
