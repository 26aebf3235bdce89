# backend/goals/decomposition.py
"""
Decomposition provider: asks an LLM to break a goal into tasks.

OpenAI and Groq are both reached through the `openai` SDK (Groq serves an
OpenAI-compatible endpoint). The provider is chosen once at startup by
`resolve_provider_config()` and handed to the goal service explicitly.
"""
import json
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import openai

from .exceptions import (
    DecompositionFormatError,
    ProviderError,
    ProviderInvalidCredentials,
    ProviderModelUnavailable,
    ProviderQuotaExceeded,
    ProviderRateLimited,
    ProviderTimeout,
)
from .prompts import DECOMPOSE_PROMPT, SYSTEM_PROMPT
from .serializers import TASK_TITLE_MAX_LENGTH, DecomposedTaskSerializer

logger = logging.getLogger(__name__)

GROQ_BASE_URL = "https://api.groq.com/openai/v1"
PLACEHOLDER_KEYS = {"your_openai_api_key_here", "your_groq_api_key_here"}
DEFAULT_REASONING = "Task breakdown generated based on goal analysis"

PROVIDER_LABELS = {"openai": "OpenAI", "groq": "Groq"}
PROVIDER_KEY_SETTINGS = {"openai": "OPENAI_API_KEY", "groq": "GROQ_API_KEY"}
PROVIDER_MODEL_SETTINGS = {"openai": "OPENAI_MODEL", "groq": "GROQ_MODEL"}


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    model: str
    api_key: str = field(repr=False)
    base_url: Optional[str] = None
    timeout: float = 60.0

    @property
    def label(self):
        return PROVIDER_LABELS.get(self.name, self.name)


@dataclass
class DecompositionResult:
    tasks: List[dict]
    reasoning: str = DEFAULT_REASONING


# --- Provider selection ---
def _usable_key(value):
    value = (value or "").strip()
    if not value or value in PLACEHOLDER_KEYS:
        return ""
    return value


def resolve_provider_config(ai_provider="auto", openai_api_key="", groq_api_key="",
                            openai_model="gpt-3.5-turbo", groq_model="llama-3.3-70b-versatile",
                            timeout=60.0):
    """
    Pick the decomposition provider from the configured keys.
    Returns a ProviderConfig, or None when no usable key is configured.
    """
    provider = (ai_provider or "auto").strip().lower()
    openai_key = _usable_key(openai_api_key)
    groq_key = _usable_key(groq_api_key)

    if provider not in ("openai", "groq"):
        if groq_key.startswith("gsk_"):
            provider = "groq"
        elif openai_key.startswith("gsk_"):
            logger.warning("Groq API key detected in OPENAI_API_KEY, using Groq. Consider moving it to GROQ_API_KEY.")
            provider = "groq"
        elif openai_key.startswith("sk-"):
            provider = "openai"
        elif groq_key:
            provider = "groq"
        elif openai_key:
            provider = "openai"
        else:
            return None

    if provider == "groq":
        api_key = groq_key
        if not api_key and openai_key.startswith("gsk_"):
            logger.warning("Using the Groq API key found in OPENAI_API_KEY. Consider moving it to GROQ_API_KEY.")
            api_key = openai_key
        if not api_key:
            return None
        if api_key.startswith("sk-"):
            logger.warning("GROQ_API_KEY holds an OpenAI key (sk-...); set AI_PROVIDER=openai to use OpenAI.")
            return None
        return ProviderConfig("groq", groq_model, api_key, GROQ_BASE_URL, timeout)

    if not openai_key:
        return None
    if openai_key.startswith("gsk_"):
        logger.warning("OPENAI_API_KEY holds a Groq key (gsk_...); set AI_PROVIDER=groq to use Groq.")
        return None
    return ProviderConfig("openai", openai_model, openai_key, None, timeout)


def provider_config_from_settings(settings):
    return resolve_provider_config(
        ai_provider=getattr(settings, "AI_PROVIDER", "auto"),
        openai_api_key=getattr(settings, "OPENAI_API_KEY", ""),
        groq_api_key=getattr(settings, "GROQ_API_KEY", ""),
        openai_model=getattr(settings, "OPENAI_MODEL", "gpt-3.5-turbo"),
        groq_model=getattr(settings, "GROQ_MODEL", "llama-3.3-70b-versatile"),
        timeout=getattr(settings, "DECOMPOSITION_TIMEOUT", 60.0),
    )


# --- Response parsing ---
def extract_json_payload(text):
    """
    Extract the JSON document from an LLM response: plain JSON, JSON inside
    markdown code fences, or a JSON object embedded in prose.
    """
    text = (text or "").strip()
    if not text:
        raise DecompositionFormatError("The AI provider returned an empty response.")

    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    if "```" in text:
        for part in text.split("```")[1:]:
            candidate = part.strip()
            # drop a language tag such as "json"
            first_line, _, rest = candidate.partition("\n")
            if first_line.strip().lower() in ("json", ""):
                candidate = rest.strip()
            if not candidate:
                continue
            try:
                return json.loads(candidate)
            except json.JSONDecodeError:
                continue

    first_brace = text.find("{")
    last_brace = text.rfind("}")
    if first_brace != -1 and last_brace > first_brace:
        try:
            return json.loads(text[first_brace:last_brace + 1])
        except json.JSONDecodeError:
            pass

    raise DecompositionFormatError()


def _numbered_title(title, n):
    suffix = f" ({n})"
    return title[:TASK_TITLE_MAX_LENGTH - len(suffix)] + suffix


def disambiguate_titles(tasks):
    """
    Make task titles unique within the list. The first task keeps a repeated
    title, later ones get " (2)", " (3)", ... so dependencies naming that
    title keep pointing at the first task. Long titles are cut so the
    numbered title still fits the title column.
    """
    original_titles = {t["title"] for t in tasks}
    taken = set()
    for task in tasks:
        title = task["title"]
        if title not in taken:
            taken.add(title)
            continue
        n = 2
        candidate = _numbered_title(title, n)
        while candidate in taken or candidate in original_titles:
            n += 1
            candidate = _numbered_title(title, n)
        logger.warning("Duplicate task title %r renamed to %r", title, candidate)
        task["title"] = candidate
        taken.add(candidate)
    return tasks


def normalize_task_descriptors(raw_tasks):
    """Validate raw task dicts from the provider; returns clean dicts with unique titles."""
    if not isinstance(raw_tasks, list) or not raw_tasks:
        raise DecompositionFormatError("The AI provider returned no tasks.")

    validated = []
    errors = []
    for idx, item in enumerate(raw_tasks):
        ser = DecomposedTaskSerializer(data=item)
        if ser.is_valid():
            validated.append(dict(ser.validated_data))
        else:
            errors.append({"index": idx, "errors": ser.errors})

    if errors:
        raise DecompositionFormatError(
            "The AI provider returned tasks that could not be read.", details=errors
        )
    return disambiguate_titles(validated)


def parse_decomposition(text):
    data = extract_json_payload(text)
    if isinstance(data, list):
        data = {"tasks": data}
    if not isinstance(data, dict) or not isinstance(data.get("tasks"), list):
        raise DecompositionFormatError("The AI provider response has no 'tasks' list.")

    tasks = normalize_task_descriptors(data["tasks"])
    reasoning = data.get("reasoning")
    if not isinstance(reasoning, str) or not reasoning.strip():
        reasoning = DEFAULT_REASONING
    return DecompositionResult(tasks=tasks, reasoning=reasoning.strip())


# --- Error classification ---
QUOTA_MARKERS = ("insufficient_quota", "exceeded your current quota", "quota", "billing")
MODEL_MARKERS = ("does not exist or you do not have access", "model_decommissioned", "decommissioned", "model_not_found")


def classify_provider_error(exc, config):
    """Map an openai SDK exception to a ProviderError. Messages never echo the SDK text."""
    label = config.label
    message = str(exc).lower()
    code = str(getattr(exc, "code", "") or "").lower()
    status_code = getattr(exc, "status_code", None)

    if isinstance(exc, openai.APITimeoutError):
        return ProviderTimeout(f"{label} did not answer within {config.timeout:g} seconds.")
    if isinstance(exc, openai.AuthenticationError) or code == "invalid_api_key":
        key_setting = PROVIDER_KEY_SETTINGS.get(config.name, "the API key setting")
        return ProviderInvalidCredentials(f"Invalid {label} API key. Please check {key_setting}.")
    if isinstance(exc, openai.RateLimitError) or status_code == 429:
        if code == "insufficient_quota" or any(m in message for m in QUOTA_MARKERS):
            return ProviderQuotaExceeded(
                f"{label} API quota exceeded. Check the account billing and usage limits."
            )
        return ProviderRateLimited(f"{label} API rate limit exceeded. Please wait a moment and try again.")
    if isinstance(exc, openai.NotFoundError) or any(m in message for m in MODEL_MARKERS):
        model_setting = PROVIDER_MODEL_SETTINGS.get(config.name, "the model setting")
        return ProviderModelUnavailable(
            f'The model "{config.model}" is not available. Set {model_setting} to a current model.'
        )
    if isinstance(exc, openai.APIConnectionError):
        return ProviderError(f"Could not reach the {label} API.")
    if status_code:
        return ProviderError(f"{label} API request failed with status {status_code}.")
    return ProviderError(f"{label} API request failed.")


# --- Providers ---
class OpenAIDecomposer:
    """
    Decomposition provider over the OpenAI chat completions API.

    Usage:
        provider = OpenAIDecomposer(config)
        result = provider.decompose("Launch a personal blog within a month")
    """

    temperature = 0.7
    max_tokens = 2000

    def __init__(self, config, client=None):
        self.config = config
        self.client = client or openai.OpenAI(
            api_key=config.api_key,
            base_url=config.base_url,
            timeout=config.timeout,
            max_retries=0,
        )

    def decompose(self, goal_text):
        prompt = DECOMPOSE_PROMPT.format(goal_text=goal_text)
        try:
            response = self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": prompt},
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except openai.OpenAIError as exc:
            error = classify_provider_error(exc, self.config)
            logger.warning(
                "%s request failed: %s (status %s)",
                self.config.label, type(exc).__name__, getattr(exc, "status_code", None),
            )
            raise error from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as exc:
            raise DecompositionFormatError("The AI provider returned no message.") from exc
        return parse_decomposition(content)
