from rest_framework import serializers
from .models import Encoder, EncodingTask, Video


class EncodingTaskSerializer(serializers.ModelSerializer):
    class Meta:
        model = EncodingTask
        fields = ["id", "encoder", "position", "name", "output_file_suffix", "command"]
        # New tasks are always appended to the end of their encoder's chain
        read_only_fields = ["encoder", "position"]

    def validate_output_file_suffix(self, value):
        if "/" in value or "\\" in value:
            raise serializers.ValidationError("Suffix must not contain a path separator.")
        return value


class EncoderSerializer(serializers.ModelSerializer):
    encoding_tasks = EncodingTaskSerializer(many=True, read_only=True)

    class Meta:
        model = Encoder
        fields = ["id", "name", "encoding_tasks", "created_at"]


class VideoSerializer(serializers.ModelSerializer):
    class Meta:
        model = Video
        fields = [
            "id",
            "file",
            "encoder",
            "state",
            "progress",
            "error",
            "callback_url",
            "created_at",
            "updated_at",
        ]
        # The encoding queue owns these; the API only reads them
        read_only_fields = ["state", "progress", "error", "created_at", "updated_at"]
