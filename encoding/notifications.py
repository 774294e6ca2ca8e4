import logging

import httpx
from django.conf import settings

logger = logging.getLogger(__name__)


class LogNotifier:
    def notify_complete(self, video_id) -> None:
        logger.info("Video %s finished encoding", video_id)


class HttpCallbackNotifier(LogNotifier):
    """
    POSTs a small JSON payload when a video completes.

    The video's own callback_url wins over the configured default. A failed
    callback is logged only; the encode itself already succeeded.
    """

    def __init__(self, default_url: str = "", timeout: float = 10.0):
        self.default_url = default_url
        self.timeout = timeout

    def url_for(self, video_id) -> str:
        from .models import Video

        url = Video.objects.filter(pk=video_id).values_list("callback_url", flat=True).first()
        return url or self.default_url

    def notify_complete(self, video_id) -> None:
        super().notify_complete(video_id)
        url = self.url_for(video_id)
        if not url:
            return
        payload = {"video_id": video_id, "state": "complete"}
        try:
            resp = httpx.post(url, json=payload, timeout=self.timeout)
            resp.raise_for_status()
        except httpx.HTTPError as e:
            logger.warning("Completion callback to %s for video %s failed: %s", url, video_id, e)


def get_notifier():
    return HttpCallbackNotifier(
        default_url=settings.ENCODING_CALLBACK_URL,
        timeout=settings.ENCODING_CALLBACK_TIMEOUT,
    )
