# backend/goals/services.py
import logging
from contextlib import contextmanager

from django.apps import apps
from django.conf import settings
from django.db import InterfaceError, OperationalError, transaction
from django.db.models import Count, Prefetch, Q
from django.utils import timezone

from . import exceptions
from .decomposition import normalize_task_descriptors
from .logic import blocking_dependencies
from .models import Goal, Task
from .scheduling import normalize_days, schedule_tasks
from .serializers import GOAL_TEXT_MAX_LENGTH, GOAL_TEXT_MIN_LENGTH

logger = logging.getLogger(__name__)

VALID_STATUSES = [choice for choice, _ in Task.STATUS_CHOICES]


@contextmanager
def store_errors():
    """Turn database connectivity failures into StoreUnavailable."""
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("Database unavailable: %s", type(exc).__name__)
        raise exceptions.StoreUnavailable() from exc


class GoalService:
    """
    Goal orchestration: creating a goal from its LLM task breakdown and the
    read / status update / delete operations over goals and their tasks.

    provider: object with decompose(goal_text) -> DecompositionResult, or
              None when no decomposition provider is configured
    today: fixed reference date for scheduling (defaults to the local date)
    enforce_gate: refuse to start or complete a task whose dependencies are
                  unfinished (defaults to settings.GOALS_ENFORCE_DEPENDENCY_GATE)
    """

    def __init__(self, provider=None, today=None, enforce_gate=None):
        self.provider = provider
        self.today = today
        if enforce_gate is None:
            enforce_gate = getattr(settings, "GOALS_ENFORCE_DEPENDENCY_GATE", False)
        self.enforce_gate = enforce_gate

    # --- create ---
    def create_goal(self, goal_text):
        if not isinstance(goal_text, str):
            raise exceptions.ValidationError("Goal text is required")
        goal_text = goal_text.strip()
        if not GOAL_TEXT_MIN_LENGTH <= len(goal_text) <= GOAL_TEXT_MAX_LENGTH:
            raise exceptions.ValidationError(
                f"Goal text must be between {GOAL_TEXT_MIN_LENGTH} and {GOAL_TEXT_MAX_LENGTH} characters"
            )

        if self.provider is None:
            raise exceptions.ProviderUnconfigured()

        with store_errors(), transaction.atomic():
            goal = Goal.objects.create(goal_text=goal_text)

            result = self.provider.decompose(goal_text)
            # parse_decomposition already validates; an injected provider may hand back raw items
            descriptors = normalize_task_descriptors(result.tasks)

            scheduled = schedule_tasks(descriptors, today=self.today or timezone.localdate())
            Task.objects.bulk_create([
                Task(
                    goal=goal,
                    title=t["title"],
                    description=t.get("description") or "",
                    estimated_days=normalize_days(t.get("estimated_days")),
                    start_date=t["start_date"],
                    end_date=t["end_date"],
                    status=Task.STATUS_PENDING,
                    priority=t.get("priority") or "medium",
                    dependencies=t.get("dependencies") or [],
                    task_order=t.get("task_order") or 0,
                )
                for t in scheduled
            ])

            goal.reasoning = result.reasoning
            goal.save(update_fields=["reasoning", "updated_at"])

        logger.info("Created goal %s with %d tasks", goal.pk, len(scheduled))
        return self.get_goal(goal.pk)

    # --- read ---
    def list_goals(self):
        with store_errors():
            return list(
                Goal.objects.annotate(
                    task_count=Count("tasks"),
                    completed_tasks=Count("tasks", filter=Q(tasks__status=Task.STATUS_COMPLETED)),
                ).order_by("-created_at", "-id")
            )

    def get_goal(self, goal_id):
        """The goal with its tasks in task_order, or None if it does not exist."""
        with store_errors():
            return (
                Goal.objects.filter(pk=goal_id)
                .prefetch_related(Prefetch("tasks", queryset=Task.objects.order_by("task_order", "id")))
                .first()
            )

    # --- update ---
    def update_task_status(self, task_id, status):
        if status not in VALID_STATUSES:
            raise exceptions.ValidationError("Invalid status")

        with store_errors():
            if self.enforce_gate and status != Task.STATUS_PENDING:
                task = Task.objects.filter(pk=task_id).first()
                if task is None:
                    return None
                blocked_by = blocking_dependencies(task, Task.objects.filter(goal_id=task.goal_id))
                if blocked_by:
                    raise exceptions.TaskBlocked(task.title, blocked_by)

            updated = Task.objects.filter(pk=task_id).update(status=status, updated_at=timezone.now())
            if not updated:
                return None
            return Task.objects.get(pk=task_id)

    # --- delete ---
    def delete_goal(self, goal_id):
        with store_errors():
            _, per_model = Goal.objects.filter(pk=goal_id).delete()
        deleted = per_model.get(Goal._meta.label, 0) > 0
        if deleted:
            logger.info("Deleted goal %s", goal_id)
        return deleted


def get_goal_service():
    """GoalService wired with the provider resolved at startup."""
    return GoalService(provider=apps.get_app_config("goals").provider)
