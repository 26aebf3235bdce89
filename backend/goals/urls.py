from django.urls import re_path

from .views import GoalDetailAPIView, GoalListCreateAPIView, HealthAPIView, TaskStatusAPIView

# trailing slashes are optional
urlpatterns = [
    re_path(r"^health/?$", HealthAPIView.as_view(), name="health"),
    re_path(r"^goals/?$", GoalListCreateAPIView.as_view(), name="goal-list"),
    re_path(r"^goals/tasks/(?P<pk>\d+)/?$", TaskStatusAPIView.as_view(), name="task-status"),
    re_path(r"^goals/(?P<pk>\d+)/?$", GoalDetailAPIView.as_view(), name="goal-detail"),
]
