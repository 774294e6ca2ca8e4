from django.db.models import ProtectedError
from rest_framework import status, views
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from .models import Encoder, EncodingTask, Video
from .serializers import EncoderSerializer, EncodingTaskSerializer, VideoSerializer

RECENT_VIDEOS = 50


class VideoListView(views.APIView):
    """
    Lists the latest videos, or attaches a new one to an encoder.

    A new video starts unencoded; the encoding queue picks it up on its
    next scan.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        qs = Video.objects.select_related("encoder")
        state = request.query_params.get("state")
        if state:
            if state not in Video.State.values:
                choices = ", ".join(Video.State.values)
                return Response({"detail": f"Unknown state {state!r}; expected one of {choices}"}, status=400)
            qs = qs.filter(state=state)
        return Response(VideoSerializer(qs[:RECENT_VIDEOS], many=True).data)

    def post(self, request):
        ser = VideoSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        video = ser.save()
        return Response(VideoSerializer(video).data, status=status.HTTP_201_CREATED)


class VideoDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, video_id):
        try:
            video = Video.objects.get(pk=video_id)
        except Video.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        return Response(VideoSerializer(video).data)

    def delete(self, request, video_id):
        # A run in progress notices the missing row and stops its ffmpeg process
        deleted, _ = Video.objects.filter(pk=video_id).delete()
        if not deleted:
            return Response({"detail": "Not found"}, status=404)
        return Response(status=status.HTTP_204_NO_CONTENT)


class EncoderListView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request):
        qs = Encoder.objects.prefetch_related("encoding_tasks")
        return Response(EncoderSerializer(qs, many=True).data)

    def post(self, request):
        ser = EncoderSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        encoder = ser.save()
        return Response(EncoderSerializer(encoder).data, status=status.HTTP_201_CREATED)


class EncoderDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get_encoder(self, encoder_id):
        try:
            return Encoder.objects.prefetch_related("encoding_tasks").get(pk=encoder_id)
        except Encoder.DoesNotExist:
            return None

    def get(self, request, encoder_id):
        encoder = self.get_encoder(encoder_id)
        if encoder is None:
            return Response({"detail": "Not found"}, status=404)
        return Response(EncoderSerializer(encoder).data)

    def patch(self, request, encoder_id):
        encoder = self.get_encoder(encoder_id)
        if encoder is None:
            return Response({"detail": "Not found"}, status=404)
        ser = EncoderSerializer(encoder, data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        ser.save()
        return Response(ser.data)

    def delete(self, request, encoder_id):
        encoder = self.get_encoder(encoder_id)
        if encoder is None:
            return Response({"detail": "Not found"}, status=404)
        try:
            encoder.delete()
        except ProtectedError:
            return Response(
                {"detail": f"Encoder is used by {encoder.videos.count()} video(s)"},
                status=status.HTTP_409_CONFLICT,
            )
        return Response(status=status.HTTP_204_NO_CONTENT)


class EncodingTaskListView(views.APIView):
    """
    Appends a task to the end of an encoder's chain.

    Runs already in progress keep the chain they started with.
    """
    permission_classes = [AllowAny]
    authentication_classes = []

    def post(self, request, encoder_id):
        try:
            encoder = Encoder.objects.get(pk=encoder_id)
        except Encoder.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        ser = EncodingTaskSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        task = ser.save(encoder=encoder)
        return Response(EncodingTaskSerializer(task).data, status=status.HTTP_201_CREATED)


class EncodingTaskDetailView(views.APIView):
    permission_classes = [AllowAny]
    authentication_classes = []

    def get(self, request, task_id):
        try:
            task = EncodingTask.objects.get(pk=task_id)
        except EncodingTask.DoesNotExist:
            return Response({"detail": "Not found"}, status=404)
        return Response(EncodingTaskSerializer(task).data)

    def delete(self, request, task_id):
        deleted, _ = EncodingTask.objects.filter(pk=task_id).delete()
        if not deleted:
            return Response({"detail": "Not found"}, status=404)
        return Response(status=status.HTTP_204_NO_CONTENT)
