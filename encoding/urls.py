from django.urls import path
from .views import (
    EncoderDetailView,
    EncoderListView,
    EncodingTaskDetailView,
    EncodingTaskListView,
    VideoDetailView,
    VideoListView,
)

urlpatterns = [
    path("videos/", VideoListView.as_view(), name="video_list"),
    path("videos/<int:video_id>/", VideoDetailView.as_view(), name="video_detail"),
    path("encoders/", EncoderListView.as_view(), name="encoder_list"),
    path("encoders/<int:encoder_id>/", EncoderDetailView.as_view(), name="encoder_detail"),
    path("encoders/<int:encoder_id>/tasks/", EncodingTaskListView.as_view(), name="encoding_task_list"),
    path("tasks/<int:task_id>/", EncodingTaskDetailView.as_view(), name="encoding_task_detail"),
]
