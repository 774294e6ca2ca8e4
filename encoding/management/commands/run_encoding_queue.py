from django.core.management.base import BaseCommand

from encoding.scheduler import JobScheduler, SchedulerConfig


class Command(BaseCommand):
    help = "Reset crashed runs, then poll for unencoded videos and encode them."

    def add_arguments(self, parser):
        parser.add_argument("--interval", type=float, help="Seconds between scans (ENCODING_POLL_INTERVAL)")
        parser.add_argument("--max-concurrent", type=int, help="Cap on simultaneous runs (ENCODING_MAX_CONCURRENT)")
        parser.add_argument("--dispatch", choices=["thread", "celery"], help="Where runs execute (ENCODING_DISPATCH)")
        parser.add_argument("--once", action="store_true", help="Recover and scan a single time, then exit")

    def handle(self, *args, **options):
        config = SchedulerConfig.from_settings(
            poll_interval=options["interval"],
            max_concurrent=options["max_concurrent"],
            dispatch=options["dispatch"],
        )
        scheduler = JobScheduler(config)

        if options["once"]:
            reset = scheduler.recover()
            dispatched = scheduler.scan_once()
            scheduler.wait()
            self.stdout.write(f"Reset {reset} video(s), dispatched {len(dispatched)}: {dispatched}")
            return

        try:
            scheduler.run_forever()
        except KeyboardInterrupt:
            self.stdout.write("Stopping encoding queue")
            scheduler.stop(cancel_runs=True)
            scheduler.wait(timeout=10)
