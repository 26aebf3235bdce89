# backend/goals/tests.py
import datetime
from unittest import mock

import httpx
import openai
from django.apps import apps
from django.db import OperationalError, connection
from django.test import TestCase, override_settings
from rest_framework.test import APITestCase

from . import exceptions
from .decomposition import (
    DEFAULT_REASONING,
    DecompositionResult,
    OpenAIDecomposer,
    ProviderConfig,
    classify_provider_error,
    disambiguate_titles,
    extract_json_payload,
    parse_decomposition,
    resolve_provider_config,
)
from .fields import parse_dependencies, serialize_dependencies
from .logic import blocking_dependencies, is_task_blocked, is_task_eligible
from .models import Goal, Task
from .scheduling import normalize_days, schedule_tasks
from .serializers import MAX_ESTIMATED_DAYS, TASK_TITLE_MAX_LENGTH
from .services import GoalService, get_goal_service

TODAY = datetime.date(2025, 3, 3)
GOAL_TEXT = "Launch a personal blog within a month"


def day(n):
    return TODAY + datetime.timedelta(days=n)


def chain_tasks():
    return [
        {"title": "C", "estimated_days": 2, "dependencies": ["B"], "task_order": 3},
        {"title": "A", "estimated_days": 2, "dependencies": [], "task_order": 1},
        {"title": "B", "estimated_days": 2, "dependencies": ["A"], "task_order": 2},
    ]


def blog_tasks():
    return [
        {"title": "Pick a platform", "description": "Compare hosts", "estimated_days": 2,
         "priority": "high", "dependencies": [], "task_order": 1},
        {"title": "Design the theme", "description": "", "estimated_days": 3,
         "priority": "medium", "dependencies": ["Pick a platform"], "task_order": 2},
        {"title": "Write first posts", "description": "Three posts", "estimated_days": 5,
         "priority": "medium", "dependencies": ["Pick a platform"], "task_order": 3},
        {"title": "Launch", "description": "Go live", "estimated_days": 1, "priority": "low",
         "dependencies": ["Design the theme", "Write first posts", "Buy a domain"], "task_order": 4},
    ]


class StubProvider:
    def __init__(self, tasks, reasoning="Set up first, then write, then launch."):
        self.tasks = tasks
        self.reasoning = reasoning
        self.calls = []

    def decompose(self, goal_text):
        self.calls.append(goal_text)
        return DecompositionResult(tasks=[dict(t) for t in self.tasks], reasoning=self.reasoning)


class FailingProvider:
    def __init__(self, exc):
        self.exc = exc

    def decompose(self, goal_text):
        raise self.exc


def by_title(tasks):
    return {t["title"]: t for t in tasks}


class SchedulingTests(TestCase):
    def test_linear_chain(self):
        res = by_title(schedule_tasks(chain_tasks(), today=TODAY))
        self.assertEqual((res["A"]["start_date"], res["A"]["end_date"]), (day(0), day(1)))
        self.assertEqual((res["B"]["start_date"], res["B"]["end_date"]), (day(2), day(3)))
        self.assertEqual((res["C"]["start_date"], res["C"]["end_date"]), (day(4), day(5)))

    def test_duration_matches_estimated_days(self):
        for t in schedule_tasks(blog_tasks(), today=TODAY):
            self.assertEqual((t["end_date"] - t["start_date"]).days + 1, t["estimated_days"])

    def test_dependent_starts_day_after_dependency_ends(self):
        res = by_title(schedule_tasks(blog_tasks(), today=TODAY))
        self.assertEqual(res["Design the theme"]["start_date"], res["Pick a platform"]["end_date"] + datetime.timedelta(days=1))

    def test_latest_dependency_wins(self):
        res = by_title(schedule_tasks(blog_tasks(), today=TODAY))
        # posts end later than the theme, unknown "Buy a domain" is ignored
        self.assertEqual(res["Write first posts"]["end_date"], day(6))
        self.assertEqual(res["Launch"]["start_date"], day(7))

    def test_no_or_unknown_dependencies_start_today(self):
        tasks = [
            {"title": "Solo", "estimated_days": 3, "dependencies": []},
            {"title": "Ghost", "estimated_days": 1, "dependencies": ["Nope", "Also missing"]},
        ]
        res = by_title(schedule_tasks(tasks, today=TODAY))
        self.assertEqual(res["Solo"]["start_date"], TODAY)
        self.assertEqual(res["Ghost"]["start_date"], TODAY)

    def test_cyclic_pair_rejected(self):
        tasks = [
            {"title": "A", "estimated_days": 1, "dependencies": ["B"]},
            {"title": "B", "estimated_days": 1, "dependencies": ["A"]},
        ]
        with self.assertRaises(exceptions.CyclicDependency) as ctx:
            schedule_tasks(tasks, today=TODAY)
        self.assertEqual(set(ctx.exception.cycle), {"A", "B"})
        self.assertEqual(ctx.exception.cycle[0], ctx.exception.cycle[-1])

    def test_longer_cycle_rejected(self):
        tasks = [
            {"title": "Root", "estimated_days": 1, "dependencies": []},
            {"title": "A", "estimated_days": 1, "dependencies": ["Root", "C"]},
            {"title": "B", "estimated_days": 1, "dependencies": ["A"]},
            {"title": "C", "estimated_days": 1, "dependencies": ["B"]},
        ]
        self.assertRaises(exceptions.CyclicDependency, schedule_tasks, tasks, TODAY)

    def test_self_dependency_ignored(self):
        res = schedule_tasks([{"title": "Me", "estimated_days": 2, "dependencies": ["Me"]}], today=TODAY)
        self.assertEqual((res[0]["start_date"], res[0]["end_date"]), (day(0), day(1)))

    def test_bad_estimated_days_count_as_one(self):
        self.assertEqual(normalize_days(0), 1)
        self.assertEqual(normalize_days(-4), 1)
        self.assertEqual(normalize_days(None), 1)
        self.assertEqual(normalize_days("abc"), 1)
        self.assertEqual(normalize_days("3"), 3)
        res = schedule_tasks([{"title": "Zero", "estimated_days": 0}], today=TODAY)
        self.assertEqual(res[0]["start_date"], res[0]["end_date"])

    def test_input_order_does_not_change_dates(self):
        forward = by_title(schedule_tasks(chain_tasks(), today=TODAY))
        backward = by_title(schedule_tasks(list(reversed(chain_tasks())), today=TODAY))
        for title in "ABC":
            self.assertEqual(forward[title]["start_date"], backward[title]["start_date"])

    def test_duplicate_title_last_one_is_dependency_target(self):
        tasks = [
            {"title": "Prep", "estimated_days": 1, "dependencies": []},
            {"title": "Prep", "estimated_days": 4, "dependencies": []},
            {"title": "Go", "estimated_days": 1, "dependencies": ["Prep"]},
        ]
        res = schedule_tasks(tasks, today=TODAY)
        self.assertEqual(res[0]["end_date"], day(0))
        self.assertEqual(res[1]["end_date"], day(3))
        self.assertEqual(res[2]["start_date"], day(4))

    def test_input_not_mutated_and_string_today(self):
        tasks = chain_tasks()
        res = schedule_tasks(tasks, today="2025-03-03")
        self.assertNotIn("start_date", tasks[0])
        self.assertEqual(by_title(res)["A"]["start_date"], TODAY)

    def test_long_chain_scheduled(self):
        n = 1500
        tasks = [
            {"title": f"T{i}", "estimated_days": 1, "dependencies": [f"T{i - 1}"] if i else [], "task_order": n - i}
            for i in range(n)
        ]
        res = by_title(schedule_tasks(tasks, today=TODAY))
        self.assertEqual(res["T0"]["start_date"], TODAY)
        self.assertEqual(res[f"T{n - 1}"]["end_date"], day(n - 1))

    def test_dates_past_calendar_end_rejected(self):
        tasks = [{"title": "Far", "estimated_days": 10000000}]
        self.assertRaises(exceptions.DecompositionFormatError, schedule_tasks, tasks, TODAY)
        self.assertRaises(
            exceptions.DecompositionFormatError,
            schedule_tasks,
            [{"title": "A"}, {"title": "B", "dependencies": ["A"]}],
            datetime.date.max,
        )


class DependencyGateTests(TestCase):
    def setUp(self):
        self.tasks = [
            {"title": "A", "status": "completed", "dependencies": []},
            {"title": "B", "status": "pending", "dependencies": []},
            {"title": "C", "status": "pending", "dependencies": ["A", "B"]},
        ]

    def test_blocked_until_all_dependencies_completed(self):
        c = self.tasks[2]
        self.assertTrue(is_task_blocked(c, self.tasks))
        self.assertEqual(blocking_dependencies(c, self.tasks), ["B"])
        self.tasks[1]["status"] = "completed"
        self.assertTrue(is_task_eligible(c, self.tasks))

    def test_in_progress_dependency_still_blocks(self):
        self.tasks[1]["status"] = "in_progress"
        self.assertTrue(is_task_blocked(self.tasks[2], self.tasks))

    def test_unknown_dependency_never_blocks(self):
        task = {"title": "D", "status": "pending", "dependencies": ["A", "Missing"]}
        self.assertFalse(is_task_blocked(task, self.tasks + [task]))

    def test_no_dependencies_always_eligible(self):
        self.assertTrue(is_task_eligible(self.tasks[1], self.tasks))

    def test_self_dependency_does_not_block(self):
        task = {"title": "E", "status": "pending", "dependencies": ["E"]}
        self.assertFalse(is_task_blocked(task, [task]))


class DependencyFieldTests(TestCase):
    def test_round_trip(self):
        deps = ["Pick a platform", "Write \"first\" posts", "Ünïcode"]
        self.assertEqual(parse_dependencies(serialize_dependencies(deps)), deps)

    def test_malformed_values_parse_to_empty(self):
        for raw in (None, "", "{not json", '{"a": 1}', "42", b"\xff\xfe"):
            self.assertEqual(parse_dependencies(raw), [])

    def test_corrupted_stored_value(self):
        goal = Goal.objects.create(goal_text=GOAL_TEXT)
        task = Task.objects.create(goal=goal, title="T", dependencies=["X"])
        self.assertEqual(Task.objects.get(pk=task.pk).dependencies, ["X"])
        with connection.cursor() as cursor:
            cursor.execute("UPDATE goals_task SET dependencies = %s WHERE id = %s", ["[oops", task.pk])
        self.assertEqual(Task.objects.get(pk=task.pk).dependencies, [])


class DecompositionParsingTests(TestCase):
    payload = '{"tasks": [{"title": "A", "estimated_days": 2}], "reasoning": "Because."}'

    def test_plain_fenced_and_prose_wrapped(self):
        for text in (
            self.payload,
            "```json\n" + self.payload + "\n```",
            "```\n" + self.payload + "\n```",
            "Here is your plan:\n" + self.payload + "\nGood luck!",
        ):
            result = parse_decomposition(text)
            self.assertEqual(result.tasks[0]["title"], "A")
            self.assertEqual(result.reasoning, "Because.")

    def test_unparseable_payloads(self):
        for text in ("", "no json here", "```json\n{broken\n```", '{"plan": []}', '{"tasks": []}', '{"tasks": "A"}'):
            with self.assertRaises(exceptions.DecompositionFormatError):
                parse_decomposition(text)

    def test_invalid_task_reports_index(self):
        with self.assertRaises(exceptions.DecompositionFormatError) as ctx:
            parse_decomposition('{"tasks": [{"title": "ok"}, {"description": "no title"}, "junk"]}')
        self.assertEqual([d["index"] for d in ctx.exception.details], [1, 2])

    def test_defaults_and_normalization(self):
        result = parse_decomposition(
            '{"tasks": [{"title": "  A  ", "estimated_days": 0, "priority": "HIGH",'
            ' "dependencies": [" B ", "", "B", null]},'
            ' {"title": "B", "estimated_days": 2.5, "priority": "urgent", "description": null}]}'
        )
        a, b = result.tasks
        self.assertEqual(result.reasoning, DEFAULT_REASONING)
        self.assertEqual(a["title"], "A")
        self.assertEqual(a["estimated_days"], 1)
        self.assertEqual(a["priority"], "high")
        self.assertEqual(a["dependencies"], ["B"])
        self.assertEqual(a["task_order"], 0)
        self.assertEqual(b["estimated_days"], 3)
        self.assertEqual(b["priority"], "medium")
        self.assertEqual(b["description"], "")

    def test_bare_task_list_accepted(self):
        result = parse_decomposition('[{"title": "Only"}]')
        self.assertEqual([t["title"] for t in result.tasks], ["Only"])

    def test_duplicate_titles_disambiguated(self):
        tasks = disambiguate_titles([{"title": "A"}, {"title": "A"}, {"title": "A (2)"}, {"title": "A"}])
        self.assertEqual([t["title"] for t in tasks], ["A", "A (3)", "A (2)", "A (4)"])

    def test_extract_json_payload_prefers_fenced_block(self):
        self.assertEqual(extract_json_payload('Sure!\n```json\n{"x": 1}\n```'), {"x": 1})

    def test_estimated_days_capped(self):
        with self.assertRaises(exceptions.DecompositionFormatError) as ctx:
            parse_decomposition('{"tasks": [{"title": "A", "estimated_days": 10000000}, {"title": "B"}]}')
        self.assertEqual([d["index"] for d in ctx.exception.details], [0])
        self.assertIn("estimated_days", ctx.exception.details[0]["errors"])
        result = parse_decomposition('{"tasks": [{"title": "A", "estimated_days": %d}]}' % MAX_ESTIMATED_DAYS)
        self.assertEqual(result.tasks[0]["estimated_days"], MAX_ESTIMATED_DAYS)

    def test_renamed_long_titles_fit_column(self):
        long_title = "x" * TASK_TITLE_MAX_LENGTH
        tasks = disambiguate_titles([{"title": long_title}, {"title": long_title}, {"title": long_title}])
        titles = [t["title"] for t in tasks]
        self.assertEqual(len(set(titles)), 3)
        self.assertTrue(all(len(t) <= TASK_TITLE_MAX_LENGTH for t in titles))
        self.assertTrue(titles[1].endswith(" (2)"))
        self.assertTrue(titles[2].endswith(" (3)"))


class ProviderConfigTests(TestCase):
    def test_unconfigured(self):
        self.assertIsNone(resolve_provider_config())
        self.assertIsNone(resolve_provider_config(openai_api_key="your_openai_api_key_here"))

    def test_auto_detection(self):
        self.assertEqual(resolve_provider_config(groq_api_key="gsk_abc").name, "groq")
        self.assertEqual(resolve_provider_config(openai_api_key="sk-abc").name, "openai")
        self.assertEqual(resolve_provider_config(groq_api_key="weird-key").name, "groq")
        self.assertEqual(resolve_provider_config(openai_api_key="weird-key").name, "openai")

    def test_groq_key_in_openai_setting_uses_groq(self):
        config = resolve_provider_config(openai_api_key="gsk_abc")
        self.assertEqual(config.name, "groq")
        self.assertEqual(config.api_key, "gsk_abc")
        self.assertEqual(config.model, "llama-3.3-70b-versatile")
        self.assertIn("groq.com", config.base_url)

    def test_explicit_provider_and_mismatched_keys(self):
        config = resolve_provider_config("openai", openai_api_key="sk-abc", groq_api_key="gsk_abc", openai_model="gpt-4o")
        self.assertEqual((config.name, config.model), ("openai", "gpt-4o"))
        self.assertIsNone(resolve_provider_config("openai", openai_api_key="gsk_abc"))
        self.assertIsNone(resolve_provider_config("groq", groq_api_key="sk-abc"))

    def test_key_hidden_from_repr(self):
        config = resolve_provider_config(openai_api_key="sk-secret-value")
        self.assertNotIn("sk-secret-value", repr(config))


def openai_error(cls, status_code, message="error", body=None):
    request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
    response = httpx.Response(status_code, request=request)
    return cls(message, response=response, body=body)


class ProviderErrorTests(TestCase):
    config = ProviderConfig("openai", "gpt-3.5-turbo", "sk-secret-value", timeout=30)

    def test_classification(self):
        request = httpx.Request("POST", "https://api.example.com/v1/chat/completions")
        cases = [
            (openai.APITimeoutError(request=request), exceptions.ProviderTimeout),
            (openai_error(openai.AuthenticationError, 401, "Incorrect API key provided: sk-secr***"),
             exceptions.ProviderInvalidCredentials),
            (openai_error(openai.RateLimitError, 429, "Rate limit reached"), exceptions.ProviderRateLimited),
            (openai_error(openai.RateLimitError, 429, "You exceeded your current quota",
                          body={"code": "insufficient_quota"}), exceptions.ProviderQuotaExceeded),
            (openai_error(openai.NotFoundError, 404, "The model does not exist"), exceptions.ProviderModelUnavailable),
            (openai_error(openai.BadRequestError, 400, "model_decommissioned"), exceptions.ProviderModelUnavailable),
            (openai.APIConnectionError(request=request), exceptions.ProviderError),
            (openai_error(openai.InternalServerError, 500, "boom"), exceptions.ProviderError),
        ]
        for exc, expected in cases:
            error = classify_provider_error(exc, self.config)
            self.assertIs(type(error), expected)
            self.assertNotIn("sk-secr", error.message)

    def test_decomposer_calls_chat_completions(self):
        client = mock.MagicMock()
        client.chat.completions.create.return_value.choices = [
            mock.Mock(message=mock.Mock(content='```json\n{"tasks": [{"title": "A"}], "reasoning": "r"}\n```'))
        ]
        result = OpenAIDecomposer(self.config, client=client).decompose(GOAL_TEXT)
        self.assertEqual(result.tasks[0]["title"], "A")
        kwargs = client.chat.completions.create.call_args.kwargs
        self.assertEqual(kwargs["model"], "gpt-3.5-turbo")
        self.assertIn(GOAL_TEXT, kwargs["messages"][1]["content"])

    def test_decomposer_raises_classified_error(self):
        client = mock.MagicMock()
        client.chat.completions.create.side_effect = openai_error(openai.RateLimitError, 429, "slow down")
        with self.assertRaises(exceptions.ProviderRateLimited):
            OpenAIDecomposer(self.config, client=client).decompose(GOAL_TEXT)


class GoalServiceTests(TestCase):
    def service(self, tasks=None, **kwargs):
        provider = StubProvider(blog_tasks() if tasks is None else tasks)
        return GoalService(provider=provider, today=TODAY, **kwargs)

    def assertNothingStored(self):
        self.assertEqual(Goal.objects.count(), 0)
        self.assertEqual(Task.objects.count(), 0)

    def test_create_goal_persists_scheduled_tasks(self):
        goal = self.service().create_goal("   " + GOAL_TEXT + "  ")
        self.assertEqual(goal.goal_text, GOAL_TEXT)
        self.assertEqual(goal.reasoning, "Set up first, then write, then launch.")
        tasks = list(goal.tasks.all())
        self.assertEqual([t.title for t in tasks], ["Pick a platform", "Design the theme", "Write first posts", "Launch"])
        launch = tasks[-1]
        self.assertEqual(launch.start_date, day(7))
        self.assertEqual(launch.end_date, day(7))
        self.assertEqual(launch.status, Task.STATUS_PENDING)
        self.assertEqual(launch.dependencies, ["Design the theme", "Write first posts", "Buy a domain"])

    def test_create_goal_disambiguates_duplicate_titles(self):
        goal = self.service([{"title": "Plan"}, {"title": "Plan", "dependencies": ["Plan"]}]).create_goal(GOAL_TEXT)
        self.assertEqual(sorted(t.title for t in goal.tasks.all()), ["Plan", "Plan (2)"])

    def test_provider_failure_rolls_back(self):
        service = GoalService(provider=FailingProvider(exceptions.ProviderRateLimited()), today=TODAY)
        with self.assertRaises(exceptions.ProviderRateLimited):
            service.create_goal(GOAL_TEXT)
        self.assertNothingStored()

    def test_format_error_rolls_back(self):
        service = GoalService(provider=FailingProvider(exceptions.DecompositionFormatError()), today=TODAY)
        self.assertRaises(exceptions.DecompositionFormatError, service.create_goal, GOAL_TEXT)
        self.assertNothingStored()

    def test_unconfigured_provider_rolls_back(self):
        self.assertRaises(exceptions.ProviderUnconfigured, GoalService(provider=None).create_goal, GOAL_TEXT)
        self.assertNothingStored()

    def test_cycle_rolls_back(self):
        service = self.service([
            {"title": "A", "dependencies": ["B"]},
            {"title": "B", "dependencies": ["A"]},
        ])
        self.assertRaises(exceptions.CyclicDependency, service.create_goal, GOAL_TEXT)
        self.assertNothingStored()

    def test_oversized_estimate_rolls_back(self):
        service = self.service([{"title": "Forever", "estimated_days": 10000000}])
        with self.assertRaises(exceptions.DecompositionFormatError) as ctx:
            service.create_goal(GOAL_TEXT)
        self.assertEqual(ctx.exception.details[0]["index"], 0)
        self.assertNothingStored()

    def test_unconfigured_provider_skips_database(self):
        with self.assertNumQueries(0):
            self.assertRaises(exceptions.ProviderUnconfigured, GoalService(provider=None).create_goal, GOAL_TEXT)

    def test_goal_text_length_validated(self):
        service = self.service()
        for text in ("short", "   too short   ", "x" * 1001, None):
            self.assertRaises(exceptions.ValidationError, service.create_goal, text)
        self.assertEqual(service.provider.calls, [])
        self.assertNothingStored()

    def test_store_unavailable(self):
        with mock.patch.object(Goal.objects, "create", side_effect=OperationalError("no route to host")):
            self.assertRaises(exceptions.StoreUnavailable, self.service().create_goal, GOAL_TEXT)

    def test_list_goals_with_counts(self):
        service = self.service()
        first = service.create_goal(GOAL_TEXT)
        second = service.create_goal("Learn to play the guitar")
        task = first.tasks.first()
        service.update_task_status(task.pk, Task.STATUS_COMPLETED)
        goals = service.list_goals()
        self.assertEqual([g.pk for g in goals], [second.pk, first.pk])
        self.assertEqual((goals[1].task_count, goals[1].completed_tasks), (4, 1))
        self.assertEqual((goals[0].task_count, goals[0].completed_tasks), (4, 0))

    def test_get_goal_orders_tasks_and_handles_missing(self):
        goal = Goal.objects.create(goal_text=GOAL_TEXT)
        Task.objects.create(goal=goal, title="Second", task_order=2)
        Task.objects.create(goal=goal, title="First", task_order=1)
        Task.objects.create(goal=goal, title="Also second", task_order=2)
        fetched = GoalService().get_goal(goal.pk)
        self.assertEqual([t.title for t in fetched.tasks.all()], ["First", "Second", "Also second"])
        self.assertIsNone(GoalService().get_goal(goal.pk + 100))

    def test_update_task_status(self):
        goal = self.service().create_goal(GOAL_TEXT)
        task = goal.tasks.first()
        updated = GoalService().update_task_status(task.pk, Task.STATUS_IN_PROGRESS)
        self.assertEqual(updated.status, Task.STATUS_IN_PROGRESS)
        self.assertEqual(updated.dependencies, [])
        self.assertIsNone(GoalService().update_task_status(task.pk + 100, Task.STATUS_COMPLETED))
        self.assertRaises(exceptions.ValidationError, GoalService().update_task_status, task.pk, "done")

    def test_gate_advisory_by_default(self):
        goal = self.service().create_goal(GOAL_TEXT)
        launch = goal.tasks.get(title="Launch")
        updated = GoalService().update_task_status(launch.pk, Task.STATUS_COMPLETED)
        self.assertEqual(updated.status, Task.STATUS_COMPLETED)

    def test_gate_enforced(self):
        goal = self.service().create_goal(GOAL_TEXT)
        service = GoalService(enforce_gate=True)
        theme = goal.tasks.get(title="Design the theme")
        with self.assertRaises(exceptions.TaskBlocked) as ctx:
            service.update_task_status(theme.pk, Task.STATUS_IN_PROGRESS)
        self.assertEqual(ctx.exception.blocked_by, ["Pick a platform"])
        self.assertEqual(service.update_task_status(theme.pk, Task.STATUS_PENDING).status, Task.STATUS_PENDING)

        service.update_task_status(goal.tasks.get(title="Pick a platform").pk, Task.STATUS_COMPLETED)
        self.assertEqual(service.update_task_status(theme.pk, Task.STATUS_IN_PROGRESS).status, Task.STATUS_IN_PROGRESS)

    @override_settings(GOALS_ENFORCE_DEPENDENCY_GATE=True)
    def test_gate_setting(self):
        self.assertTrue(GoalService().enforce_gate)

    def test_delete_goal_cascades(self):
        goal = self.service().create_goal(GOAL_TEXT)
        self.assertTrue(GoalService().delete_goal(goal.pk))
        self.assertNothingStored()
        self.assertFalse(GoalService().delete_goal(goal.pk))

    def test_get_goal_service_uses_startup_provider(self):
        config = apps.get_app_config("goals")
        provider = StubProvider([])
        with mock.patch.object(config, "provider", provider):
            self.assertIs(get_goal_service().provider, provider)


class GoalAPITests(APITestCase):
    def use_service(self, service):
        patcher = mock.patch("goals.views.get_goal_service", return_value=service)
        patcher.start()
        self.addCleanup(patcher.stop)
        return service

    def setUp(self):
        self.service = self.use_service(GoalService(provider=StubProvider(blog_tasks()), today=TODAY))

    def create(self):
        return self.client.post("/api/goals", {"goal_text": GOAL_TEXT}, format="json")

    def test_create_goal(self):
        res = self.create()
        self.assertEqual(res.status_code, 201)
        body = res.json()
        self.assertEqual(body["reasoning"], "Set up first, then write, then launch.")
        self.assertEqual(len(body["tasks"]), 4)
        platform, theme = body["tasks"][0], body["tasks"][1]
        self.assertEqual((platform["start_date"], platform["end_date"]), ("2025-03-03", "2025-03-04"))
        self.assertEqual(theme["dependencies"], ["Pick a platform"])
        self.assertTrue(theme["blocked"])
        self.assertEqual(theme["blocked_by"], ["Pick a platform"])
        self.assertEqual(body["progress"], 0)

    def test_create_goal_validation(self):
        for payload in ({"goal_text": "  too short  "}, {"goal_text": "x" * 1001}, {}):
            res = self.client.post("/api/goals", payload, format="json")
            self.assertEqual(res.status_code, 400)
            self.assertIn("goal_text", res.json()["validation_errors"])
        self.assertEqual(Goal.objects.count(), 0)

    def test_create_goal_provider_errors(self):
        cases = [
            (None, 503),
            (FailingProvider(exceptions.ProviderRateLimited()), 429),
            (FailingProvider(exceptions.ProviderInvalidCredentials()), 503),
            (FailingProvider(exceptions.DecompositionFormatError()), 502),
            (FailingProvider(exceptions.ProviderTimeout()), 504),
        ]
        for provider, expected in cases:
            self.service.provider = provider
            res = self.create()
            self.assertEqual(res.status_code, expected)
            self.assertEqual(res.json()["error"], "Failed to create goal")
            self.assertIn("message", res.json())
        self.assertEqual(Goal.objects.count(), 0)

    def test_create_goal_store_unavailable(self):
        service = self.use_service(mock.Mock())
        service.create_goal.side_effect = exceptions.StoreUnavailable()
        self.assertEqual(self.create().status_code, 503)

    def test_unexpected_error_hides_details(self):
        service = self.use_service(mock.Mock())
        service.create_goal.side_effect = RuntimeError("key sk-secret-value leaked")
        with self.assertLogs("goals.views", level="ERROR"):
            res = self.create()
        self.assertEqual(res.status_code, 500)
        self.assertNotIn("sk-secret-value", res.content.decode())

    def test_list_goals(self):
        self.create()
        res = self.client.get("/api/goals")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()[0]["task_count"], 4)
        self.assertEqual(res.json()[0]["completed_tasks"], 0)

    def test_goal_detail(self):
        goal_id = self.create().json()["id"]
        res = self.client.get(f"/api/goals/{goal_id}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["tasks"][3]["dependencies"], ["Design the theme", "Write first posts", "Buy a domain"])
        self.assertEqual(self.client.get(f"/api/goals/{goal_id}/").status_code, 200)
        self.assertEqual(self.client.get(f"/api/goals/{goal_id + 100}").status_code, 404)

    def test_update_task_status(self):
        task_id = self.create().json()["tasks"][0]["id"]
        res = self.client.patch(f"/api/goals/tasks/{task_id}", {"status": "completed"}, format="json")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["status"], "completed")
        self.assertEqual(self.client.patch(f"/api/goals/tasks/{task_id}", {"status": "done"}, format="json").status_code, 400)
        self.assertEqual(self.client.patch(f"/api/goals/tasks/{task_id + 100}", {"status": "pending"}, format="json").status_code, 404)

        goal_id = res.json()["goal_id"]
        detail = self.client.get(f"/api/goals/{goal_id}").json()
        self.assertEqual(detail["completed_tasks"], 1)
        self.assertEqual(detail["progress"], 25)
        self.assertFalse(detail["tasks"][1]["blocked"])

    def test_update_blocked_task_when_enforced(self):
        task_id = self.create().json()["tasks"][1]["id"]
        self.service.enforce_gate = True
        res = self.client.patch(f"/api/goals/tasks/{task_id}", {"status": "in_progress"}, format="json")
        self.assertEqual(res.status_code, 409)
        self.assertEqual(res.json()["blocked_by"], ["Pick a platform"])

    def test_delete_goal(self):
        goal_id = self.create().json()["id"]
        res = self.client.delete(f"/api/goals/{goal_id}")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["message"], "Goal deleted successfully")
        self.assertEqual(Task.objects.count(), 0)
        self.assertEqual(self.client.delete(f"/api/goals/{goal_id}").status_code, 404)

    def test_health(self):
        res = self.client.get("/api/health")
        self.assertEqual(res.status_code, 200)
        self.assertEqual(res.json()["status"], "ok")
