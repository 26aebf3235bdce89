import json

from django.db import models


def serialize_dependencies(dependencies):
    """Serialize a list of dependency titles to its stored JSON array form."""
    return json.dumps([str(d) for d in (dependencies or [])])


def parse_dependencies(raw):
    """
    Parse a stored dependency value back into a list of titles.
    Anything malformed (bad JSON, not an array) comes back as an empty list.
    """
    if raw is None:
        return []
    if isinstance(raw, (list, tuple)):
        return [d for d in raw if isinstance(d, str)]
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    if not isinstance(raw, str) or not raw.strip():
        return []
    try:
        value = json.loads(raw)
    except ValueError:
        return []
    if not isinstance(value, list):
        return []
    return [d for d in value if isinstance(d, str)]


class DependencyListField(models.TextField):
    """Ordered list of dependency titles stored as a JSON array string."""

    def from_db_value(self, value, expression, connection):
        return parse_dependencies(value)

    def to_python(self, value):
        return parse_dependencies(value)

    def get_prep_value(self, value):
        if isinstance(value, str):
            return serialize_dependencies(parse_dependencies(value))
        return serialize_dependencies(value)
