import logging

from celery import shared_task

from .runner import run_pipeline_for

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def encode_video(self, video_id: int) -> dict:
    """Celery entry point for one video's run (ENCODING_DISPATCH=celery)."""
    logger.info("Task %s picked up video %s", self.request.id, video_id)
    outcome = run_pipeline_for(video_id)
    return {"video_id": video_id, "state": outcome.state, "reason": outcome.reason}
