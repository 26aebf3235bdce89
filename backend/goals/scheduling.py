# backend/goals/scheduling.py
import datetime

from .exceptions import CyclicDependency, DecompositionFormatError

ONE_DAY = datetime.timedelta(days=1)


# --- Helpers: input normalization ---
def normalize_days(value):
    """Whole number of days a task takes; missing, bad or < 1 means 1."""
    try:
        days = int(value)
    except (TypeError, ValueError, OverflowError):
        return 1
    return max(1, days)


def _order_key(value):
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_date(today):
    if today is None:
        return datetime.date.today()
    if isinstance(today, datetime.datetime):
        return today.date()
    if isinstance(today, str):
        return datetime.date.fromisoformat(today)
    return today


# --- Main scheduling function ---
def schedule_tasks(task_list, today=None):
    """
    task_list: list of task dicts with 'title', 'estimated_days',
               'dependencies' (titles) and optionally 'task_order'
    today: reference date (date or 'YYYY-MM-DD'), defaults to date.today()
    returns: copies of the task dicts with 'start_date' / 'end_date' set

    A task starts on `today`, or the day after the latest end date among the
    dependencies that name a task in the list. Unknown titles and a task
    naming itself are ignored. A cycle between different tasks raises
    CyclicDependency, and dates past datetime.date.max raise
    DecompositionFormatError.
    """
    today = _as_date(today)
    tasks = [dict(t) for t in task_list]

    # duplicate titles: the last one is the dependency target
    by_title = {t.get("title"): t for t in tasks}
    resolved = {}

    def known_deps(task):
        own_title = task.get("title")
        return [dep for dep in task.get("dependencies") or [] if dep != own_title and dep in by_title]

    def dates_for(task):
        # every known dependency must already be in `resolved`
        start = today
        try:
            for dep in known_deps(task):
                _, dep_end = resolved[dep]
                if dep_end >= start:
                    start = dep_end + ONE_DAY
            end = start + datetime.timedelta(days=normalize_days(task.get("estimated_days")) - 1)
        except OverflowError as exc:
            raise DecompositionFormatError(
                f"Task {task.get('title')!r} would end after the last representable date."
            ) from exc
        return start, end

    def resolve(title):
        # depth-first over dependencies on an explicit stack, no recursion
        if title in resolved:
            return resolved[title]
        path = [title]
        stack = [iter(known_deps(by_title[title]))]
        while stack:
            pending = None
            for dep in stack[-1]:
                if dep in resolved:
                    continue
                if dep in path:
                    raise CyclicDependency(path[path.index(dep):] + [dep])
                pending = dep
                break
            if pending is None:
                stack.pop()
                current = path.pop()
                resolved[current] = dates_for(by_title[current])
            else:
                path.append(pending)
                stack.append(iter(known_deps(by_title[pending])))
        return resolved[title]

    ordered = sorted(enumerate(tasks), key=lambda pair: (_order_key(pair[1].get("task_order")), pair[0]))
    for _, task in ordered:
        title = task.get("title")
        if by_title.get(title) is task:
            start, end = resolve(title)
        else:
            # shadowed by a later task with the same title
            for dep in known_deps(task):
                resolve(dep)
            start, end = dates_for(task)
        task["start_date"] = start
        task["end_date"] = end

    return tasks
