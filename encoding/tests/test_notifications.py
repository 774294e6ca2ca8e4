from unittest.mock import patch

import httpx
from django.test import TestCase, override_settings

from encoding.models import Encoder, Video
from encoding.notifications import HttpCallbackNotifier, LogNotifier, get_notifier


class HttpCallbackNotifierTests(TestCase):

    def setUp(self):
        self.encoder = Encoder.objects.create(name="web")

    @patch("encoding.notifications.httpx.post")
    def test_posts_to_video_callback(self, mock_post):
        video = Video.objects.create(file="/m/in.mp4", encoder=self.encoder, callback_url="http://cms.local/done")

        HttpCallbackNotifier(default_url="http://fallback.local/").notify_complete(video.pk)

        mock_post.assert_called_once_with(
            "http://cms.local/done",
            json={"video_id": video.pk, "state": "complete"},
            timeout=10.0,
        )

    @patch("encoding.notifications.httpx.post")
    def test_falls_back_to_default_url(self, mock_post):
        video = Video.objects.create(file="/m/in.mp4", encoder=self.encoder)
        HttpCallbackNotifier(default_url="http://fallback.local/").notify_complete(video.pk)
        self.assertEqual(mock_post.call_args.args[0], "http://fallback.local/")

    @patch("encoding.notifications.httpx.post")
    def test_no_url_no_request(self, mock_post):
        video = Video.objects.create(file="/m/in.mp4", encoder=self.encoder)
        with self.assertLogs("encoding.notifications", level="INFO"):
            HttpCallbackNotifier().notify_complete(video.pk)
        mock_post.assert_not_called()

    @patch("encoding.notifications.httpx.post", side_effect=httpx.ConnectError("connection refused"))
    def test_callback_errors_are_logged(self, _post):
        video = Video.objects.create(file="/m/in.mp4", encoder=self.encoder, callback_url="http://cms.local/done")

        with self.assertLogs("encoding.notifications", level="WARNING") as logs:
            HttpCallbackNotifier().notify_complete(video.pk)

        self.assertIn("connection refused", logs.output[-1])

    @override_settings(ENCODING_CALLBACK_URL="http://hook.local/", ENCODING_CALLBACK_TIMEOUT=3.0)
    def test_get_notifier_reads_settings(self):
        notifier = get_notifier()
        self.assertIsInstance(notifier, LogNotifier)
        self.assertEqual((notifier.default_url, notifier.timeout), ("http://hook.local/", 3.0))
