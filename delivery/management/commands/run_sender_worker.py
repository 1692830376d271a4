from django.conf import settings
from django.core.management.base import BaseCommand

from delivery.loop import run_loop
from delivery.sender import SenderWorker
from delivery.transport import get_transport


class Command(BaseCommand):
    help = "Send due campaigns in paced chunks"

    def add_arguments(self, parser):
        parser.add_argument("--once", action="store_true", help="Run a single tick and exit")
        parser.add_argument(
            "--transport",
            choices=["smtp", "api"],
            help="Override MAIL_TRANSPORT for this process",
        )

    def handle(self, *args, **options):
        worker = SenderWorker(transport=get_transport(options.get("transport")))
        self.stdout.write(f"Sender worker {worker.owner_id} starting...")
        try:
            result = run_loop(
                "sender worker",
                worker.tick,
                interval=settings.SENDER_TICK_SECONDS,
                heartbeat_interval=settings.SENDER_HEARTBEAT_SECONDS,
                once=options["once"],
            )
        except KeyboardInterrupt:
            self.stdout.write(self.style.WARNING("Sender worker stopped"))
            return

        sent = sum((result or {}).values())
        self.stdout.write(self.style.SUCCESS(f"Sender tick complete: {sent} recipients processed"))
