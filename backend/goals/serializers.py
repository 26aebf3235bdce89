import math

from rest_framework import serializers

from .logic import blocking_dependencies
from .models import Goal, Task

GOAL_TEXT_MIN_LENGTH = 10
GOAL_TEXT_MAX_LENGTH = 1000
PRIORITIES = {"low", "medium", "high"}
TASK_TITLE_MAX_LENGTH = 500
MAX_ESTIMATED_DAYS = 3650


# --- Request payloads ---
class GoalCreateSerializer(serializers.Serializer):
    goal_text = serializers.CharField(
        min_length=GOAL_TEXT_MIN_LENGTH,
        max_length=GOAL_TEXT_MAX_LENGTH,
        error_messages={
            "required": "Goal text is required",
            "blank": "Goal text is required",
            "min_length": "Goal text must be between 10 and 1000 characters",
            "max_length": "Goal text must be between 10 and 1000 characters",
        },
    )


class TaskStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Task.STATUS_CHOICES)


# --- Decomposition provider output ---
class DecomposedTaskSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=TASK_TITLE_MAX_LENGTH)
    description = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="")
    estimated_days = serializers.FloatField(required=False, allow_null=True, default=1, max_value=MAX_ESTIMATED_DAYS)
    priority = serializers.CharField(required=False, allow_blank=True, allow_null=True, default="medium")
    dependencies = serializers.ListField(
        child=serializers.CharField(allow_blank=True, allow_null=True),
        required=False,
        allow_null=True,
        default=list,
    )
    task_order = serializers.IntegerField(required=False, allow_null=True, default=0)

    def validate_description(self, value):
        return value or ""

    def validate_estimated_days(self, value):
        if value is None or math.isnan(value) or math.isinf(value):
            return 1
        return max(1, math.ceil(value))

    def validate_priority(self, value):
        value = (value or "").strip().lower()
        return value if value in PRIORITIES else "medium"

    def validate_dependencies(self, value):
        cleaned = []
        for dep in value or []:
            dep = (dep or "").strip()
            if dep and dep not in cleaned:
                cleaned.append(dep)
        return cleaned

    def validate_task_order(self, value):
        return value or 0


# --- Responses ---
class TaskSerializer(serializers.ModelSerializer):
    goal_id = serializers.IntegerField(read_only=True)
    dependencies = serializers.ListField(child=serializers.CharField(), read_only=True)

    class Meta:
        model = Task
        fields = [
            "id",
            "goal_id",
            "title",
            "description",
            "estimated_days",
            "start_date",
            "end_date",
            "status",
            "priority",
            "dependencies",
            "task_order",
            "created_at",
            "updated_at",
        ]


class TaskDetailSerializer(TaskSerializer):
    """Task with its dependency gate state; needs the goal's tasks as context['all_tasks']."""

    blocked = serializers.SerializerMethodField()
    blocked_by = serializers.SerializerMethodField()

    class Meta(TaskSerializer.Meta):
        fields = TaskSerializer.Meta.fields + ["blocked", "blocked_by"]

    def get_blocked_by(self, task):
        return blocking_dependencies(task, self.context.get("all_tasks", []))

    def get_blocked(self, task):
        return bool(self.get_blocked_by(task))


class GoalSummarySerializer(serializers.ModelSerializer):
    task_count = serializers.IntegerField(read_only=True)
    completed_tasks = serializers.IntegerField(read_only=True)

    class Meta:
        model = Goal
        fields = ["id", "goal_text", "created_at", "updated_at", "task_count", "completed_tasks"]


class GoalDetailSerializer(serializers.ModelSerializer):
    tasks = serializers.SerializerMethodField()
    task_count = serializers.SerializerMethodField()
    completed_tasks = serializers.SerializerMethodField()
    progress = serializers.SerializerMethodField()

    class Meta:
        model = Goal
        fields = [
            "id",
            "goal_text",
            "reasoning",
            "created_at",
            "updated_at",
            "task_count",
            "completed_tasks",
            "progress",
            "tasks",
        ]

    def _tasks(self, goal):
        return list(goal.tasks.all())

    def get_tasks(self, goal):
        tasks = self._tasks(goal)
        return TaskDetailSerializer(tasks, many=True, context={"all_tasks": tasks}).data

    def get_task_count(self, goal):
        return len(self._tasks(goal))

    def get_completed_tasks(self, goal):
        return sum(1 for t in self._tasks(goal) if t.status == Task.STATUS_COMPLETED)

    def get_progress(self, goal):
        total = self.get_task_count(goal)
        if not total:
            return 0
        return round(self.get_completed_tasks(goal) * 100 / total)
