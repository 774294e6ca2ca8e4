from django.db import models
from django.db.models import Max, Q
from django.utils import timezone

from .chain import Step, TaskChain


class Encoder(models.Model):
    """A named encoding profile, made of an ordered list of EncodingTasks."""

    name = models.CharField(max_length=254, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def task_chain(self) -> TaskChain:
        """Snapshot the current tasks so later edits can't touch a live run."""
        steps = tuple(
            Step(
                position=t.position,
                output_file_suffix=t.output_file_suffix,
                command=t.command,
                name=t.name,
            )
            for t in self.encoding_tasks.order_by("position", "id")
        )
        return TaskChain(encoder_name=self.name, steps=steps)


class EncodingTask(models.Model):
    encoder = models.ForeignKey(Encoder, on_delete=models.CASCADE, related_name="encoding_tasks")
    position = models.PositiveIntegerField(blank=True)
    name = models.CharField(max_length=254, blank=True, default="")
    output_file_suffix = models.CharField(max_length=254)  # e.g. "-360p.mp4"
    command = models.TextField()                           # ffmpeg options, e.g. "-vcodec libx264 -s 640x360"
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["position", "id"]

    def __str__(self):
        return f"{self.encoder_id}#{self.position} {self.name or self.output_file_suffix}"

    def save(self, *args, **kwargs):
        # Tasks are append-only: a new one goes to the end of its encoder's chain
        if self.position is None:
            last = EncodingTask.objects.filter(encoder_id=self.encoder_id).aggregate(m=Max("position"))["m"]
            self.position = 0 if last is None else last + 1
        super().save(*args, **kwargs)


class VideoQuerySet(models.QuerySet):
    def unencoded(self):
        return self.filter(state=Video.State.UNENCODED)

    def encoding(self):
        return self.filter(state=Video.State.ENCODING)

    def complete(self):
        return self.filter(state=Video.State.COMPLETE)

    def with_errors(self):
        return self.filter(state=Video.State.ERROR)

    def reset_encoding_videos(self, stale_before=None) -> int:
        """
        Put videos orphaned by a dead process back in the queue.

        A live run refreshes `heartbeat_at` while it works, so with
        `stale_before` only rows whose heartbeat is missing or older than
        that moment are reset.
        """
        orphans = self.encoding()
        if stale_before is not None:
            orphans = orphans.filter(Q(heartbeat_at__isnull=True) | Q(heartbeat_at__lt=stale_before))
        return orphans.update(
            state=Video.State.UNENCODED,
            progress=0,
            claimed_by="",
            heartbeat_at=None,
            updated_at=timezone.now(),
        )

    def claim(self, video_id, owner: str = "") -> bool:
        """Atomically move one video from unencoded to encoding, owned by `owner`."""
        now = timezone.now()
        claimed = self.unencoded().filter(pk=video_id).update(
            state=Video.State.ENCODING,
            progress=0,
            error="",
            claimed_by=owner,
            heartbeat_at=now,
            updated_at=now,
        )
        return claimed == 1


class Video(models.Model):
    class State(models.TextChoices):
        UNENCODED = "unencoded"
        ENCODING = "encoding"
        COMPLETE = "complete"
        ERROR = "error"

    file = models.CharField(max_length=1024)    # absolute path of the source file
    encoder = models.ForeignKey(Encoder, on_delete=models.PROTECT, related_name="videos")
    state = models.CharField(max_length=16, choices=State.choices, default=State.UNENCODED, db_index=True)
    progress = models.PositiveSmallIntegerField(default=0)  # 0..100, current step only
    error = models.TextField(blank=True, default="")
    callback_url = models.URLField(max_length=1024, blank=True, default="")
    claimed_by = models.CharField(max_length=128, blank=True, default="")  # run that owns an encoding row
    heartbeat_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    objects = VideoQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"Video #{self.id} ({self.state})"
