import logging
import os
import threading

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class EncodingConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "encoding"
    scheduler = None
    _autostart_lock = threading.Lock()

    def autostart(self):
        """
        Start the scheduler inside the web server process.

        Called from the WSGI entry point only, so Celery workers and
        management commands never start one. Returns the running scheduler,
        or None when ENCODING_AUTOSTART is off.
        """
        if not settings.ENCODING_AUTOSTART:
            return None
        with self._autostart_lock:
            if self.scheduler is None:
                from .scheduler import JobScheduler, SchedulerConfig

                self.scheduler = JobScheduler(SchedulerConfig.from_settings())
                self.scheduler.start()
                logger.info("Encoding queue autostarted in process %s", os.getpid())
        return self.scheduler
