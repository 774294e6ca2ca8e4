from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import SimpleTestCase, override_settings

from django.apps import apps


class RunEncodingQueueCommandTests(SimpleTestCase):

    @override_settings(ENCODING_POLL_INTERVAL=5.0, ENCODING_MAX_CONCURRENT=None, ENCODING_DISPATCH="thread")
    @patch("encoding.management.commands.run_encoding_queue.JobScheduler")
    def test_once_recovers_scans_and_waits(self, mock_scheduler_cls):
        scheduler = mock_scheduler_cls.return_value
        scheduler.recover.return_value = 2
        scheduler.scan_once.return_value = [4, 5]
        out = StringIO()

        call_command("run_encoding_queue", "--once", "--max-concurrent", "3", stdout=out)

        config = mock_scheduler_cls.call_args.args[0]
        self.assertEqual((config.poll_interval, config.max_concurrent, config.dispatch), (5.0, 3, "thread"))
        scheduler.recover.assert_called_once()
        scheduler.scan_once.assert_called_once()
        scheduler.wait.assert_called_once()
        scheduler.run_forever.assert_not_called()
        self.assertIn("Reset 2 video(s), dispatched 2", out.getvalue())

    @patch("encoding.management.commands.run_encoding_queue.JobScheduler")
    def test_interrupt_stops_the_queue(self, mock_scheduler_cls):
        scheduler = mock_scheduler_cls.return_value
        scheduler.run_forever.side_effect = KeyboardInterrupt

        call_command("run_encoding_queue", "--dispatch", "celery", stdout=StringIO())

        self.assertEqual(mock_scheduler_cls.call_args.args[0].dispatch, "celery")
        scheduler.stop.assert_called_once_with(cancel_runs=True)


class AutostartTests(SimpleTestCase):

    def setUp(self):
        self.config = apps.get_app_config("encoding")
        self.addCleanup(setattr, self.config, "scheduler", None)

    @override_settings(ENCODING_AUTOSTART=False)
    @patch("encoding.scheduler.JobScheduler")
    def test_off_by_default(self, mock_scheduler_cls):
        self.assertIsNone(self.config.autostart())
        mock_scheduler_cls.assert_not_called()

    @override_settings(ENCODING_AUTOSTART=True)
    @patch("encoding.scheduler.JobScheduler")
    def test_starts_one_scheduler_per_process(self, mock_scheduler_cls):
        first = self.config.autostart()
        second = self.config.autostart()

        self.assertIs(first, second)
        mock_scheduler_cls.assert_called_once()
        mock_scheduler_cls.return_value.start.assert_called_once()

    @override_settings(ENCODING_AUTOSTART=True)
    @patch("encoding.scheduler.JobScheduler")
    def test_loading_apps_does_not_start_a_scheduler(self, mock_scheduler_cls):
        # Celery workers and manage.py commands only go through ready()
        self.config.ready()
        mock_scheduler_cls.assert_not_called()
