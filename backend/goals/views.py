# backend/goals/views.py
import logging

from django.apps import apps
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import APIView

from .exceptions import PlannerError
from .serializers import (
    GoalCreateSerializer,
    GoalDetailSerializer,
    GoalSummarySerializer,
    TaskSerializer,
    TaskStatusSerializer,
)
from .services import get_goal_service

logger = logging.getLogger(__name__)


def error_response(exc):
    return Response(exc.to_dict(), status=exc.status_code)


def internal_error_response(error):
    return Response(
        {"error": error, "message": "An unexpected error occurred. Please try again later."},
        status=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


class GoalListCreateAPIView(APIView):
    def get(self, request):
        try:
            goals = get_goal_service().list_goals()
        except PlannerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("Error fetching goals")
            return internal_error_response("Failed to fetch goals")
        return Response(GoalSummarySerializer(goals, many=True).data, status=status.HTTP_200_OK)

    def post(self, request):
        data = request.data if isinstance(request.data, dict) else {}
        ser = GoalCreateSerializer(data=data)
        if not ser.is_valid():
            return Response(
                {"error": "Invalid goal", "validation_errors": ser.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            goal = get_goal_service().create_goal(ser.validated_data["goal_text"])
        except PlannerError as exc:
            logger.warning("Goal creation failed: %s", exc.message)
            return Response(
                dict(exc.to_dict(), error="Failed to create goal", reason=exc.error),
                status=exc.status_code,
            )
        except Exception:
            logger.exception("Error creating goal")
            return internal_error_response("Failed to create goal")
        return Response(GoalDetailSerializer(goal).data, status=status.HTTP_201_CREATED)


class GoalDetailAPIView(APIView):
    def get(self, request, pk):
        try:
            goal = get_goal_service().get_goal(int(pk))
        except PlannerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("Error fetching goal %s", pk)
            return internal_error_response("Failed to fetch goal")
        if goal is None:
            return Response({"error": "Goal not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(GoalDetailSerializer(goal).data, status=status.HTTP_200_OK)

    def delete(self, request, pk):
        try:
            deleted = get_goal_service().delete_goal(int(pk))
        except PlannerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("Error deleting goal %s", pk)
            return internal_error_response("Failed to delete goal")
        if not deleted:
            return Response({"error": "Goal not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response({"message": "Goal deleted successfully"}, status=status.HTTP_200_OK)


class TaskStatusAPIView(APIView):
    def patch(self, request, pk):
        data = request.data if isinstance(request.data, dict) else {}
        ser = TaskStatusSerializer(data=data)
        if not ser.is_valid():
            return Response(
                {"error": "Invalid status", "validation_errors": ser.errors},
                status=status.HTTP_400_BAD_REQUEST,
            )

        try:
            task = get_goal_service().update_task_status(int(pk), ser.validated_data["status"])
        except PlannerError as exc:
            return error_response(exc)
        except Exception:
            logger.exception("Error updating task %s", pk)
            return internal_error_response("Failed to update task")
        if task is None:
            return Response({"error": "Task not found"}, status=status.HTTP_404_NOT_FOUND)
        return Response(TaskSerializer(task).data, status=status.HTTP_200_OK)


class HealthAPIView(APIView):
    def get(self, request):
        provider = apps.get_app_config("goals").provider
        return Response(
            {
                "status": "ok",
                "message": "Smart Task Planner API is running",
                "decomposition_provider": provider.config.name if provider is not None else None,
            },
            status=status.HTTP_200_OK,
        )
