# backend/goals/exceptions.py
"""
Error taxonomy for goal planning. Every class carries the HTTP status and
the short `error` label the API answers with.
"""


class PlannerError(Exception):
    status_code = 500
    error = "Internal error"
    default_message = "An unexpected error occurred"

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self):
        return {"error": self.error, "message": self.message}


class ValidationError(PlannerError):
    status_code = 400
    error = "Invalid request"
    default_message = "The request data is invalid"


class StoreUnavailable(PlannerError):
    status_code = 503
    error = "Database unavailable"
    default_message = "Database is not connected. Please ensure the database is running and configured."


# --- Decomposition provider failures ---
class ProviderError(PlannerError):
    status_code = 502
    error = "AI service error"
    default_message = "Failed to generate task breakdown"


class ProviderUnconfigured(ProviderError):
    status_code = 503
    error = "AI service not configured"
    default_message = "AI service is not configured. Please set GROQ_API_KEY or OPENAI_API_KEY."


class ProviderInvalidCredentials(ProviderError):
    status_code = 503
    error = "AI service misconfigured"
    default_message = "The AI provider rejected the configured API key."


class ProviderModelUnavailable(ProviderError):
    status_code = 503
    error = "AI model unavailable"
    default_message = "The configured AI model is not available."


class ProviderRateLimited(ProviderError):
    status_code = 429
    error = "AI service rate limited"
    default_message = "AI provider rate limit exceeded. Please wait a moment and try again."


class ProviderQuotaExceeded(ProviderError):
    status_code = 429
    error = "AI service quota exceeded"
    default_message = "AI provider quota exceeded. Check the account billing and usage limits."


class ProviderTimeout(ProviderError):
    status_code = 504
    error = "AI service timeout"
    default_message = "The AI provider did not answer in time."


class DecompositionFormatError(ProviderError):
    error = "Invalid task breakdown"
    default_message = "The AI provider returned a task breakdown that could not be parsed."

    def __init__(self, message=None, details=None):
        super().__init__(message)
        self.details = details or []

    def to_dict(self):
        data = super().to_dict()
        if self.details:
            data["details"] = self.details
        return data


class CyclicDependency(PlannerError):
    status_code = 502
    error = "Invalid task breakdown"

    def __init__(self, cycle):
        self.cycle = list(cycle)
        super().__init__("Circular dependency detected: " + " -> ".join(self.cycle))


class TaskBlocked(PlannerError):
    status_code = 409
    error = "Task blocked"

    def __init__(self, title, blocked_by):
        self.blocked_by = list(blocked_by)
        super().__init__(
            f"Task {title!r} is waiting on unfinished dependencies: " + ", ".join(self.blocked_by)
        )

    def to_dict(self):
        data = super().to_dict()
        data["blocked_by"] = self.blocked_by
        return data
