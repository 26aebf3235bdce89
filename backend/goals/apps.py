import logging

from django.apps import AppConfig
from django.conf import settings

logger = logging.getLogger(__name__)


class GoalsConfig(AppConfig):
    name = "goals"
    default_auto_field = "django.db.models.BigAutoField"

    # decomposition provider, picked once at startup; None when unconfigured
    provider = None

    def ready(self):
        from .decomposition import OpenAIDecomposer, provider_config_from_settings

        config = provider_config_from_settings(settings)
        if config is None:
            logger.warning(
                "AI API key not configured - task breakdown will not work. "
                "Configure GROQ_API_KEY or OPENAI_API_KEY."
            )
            self.provider = None
            return

        self.provider = OpenAIDecomposer(config)
        logger.info("Using %s (%s) for task breakdown", config.label, config.model)
