COMPLETED = "completed"


def _get(task, name, default=None):
    if isinstance(task, dict):
        return task.get(name, default)
    return getattr(task, name, default)


def blocking_dependencies(task, all_tasks):
    """Dependency titles of `task` that name a task in `all_tasks` not yet completed."""
    status_by_title = {_get(t, "title"): _get(t, "status") for t in all_tasks}
    own_title = _get(task, "title")
    blocking = []
    for dep in _get(task, "dependencies") or []:
        # titles that match no task never block, neither does a task naming itself
        if dep == own_title:
            continue
        if dep in status_by_title and status_by_title[dep] != COMPLETED:
            blocking.append(dep)
    return blocking


def is_task_blocked(task, all_tasks):
    if not _get(task, "dependencies"):
        return False
    return bool(blocking_dependencies(task, all_tasks))


def is_task_eligible(task, all_tasks):
    return not is_task_blocked(task, all_tasks)
