import httpx

from signal_analyzer.config import InsightBackend, Settings
from signal_analyzer.insights.base import InsightGenerator
from signal_analyzer.insights.openai_api import OpenAIInsightGenerator
from signal_analyzer.insights.rules import RuleBasedInsightGenerator, risk_reward_ratio
from signal_analyzer.utils import get_logger

logger = get_logger(__name__)


def build_insight_generator(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> InsightGenerator:
    """Pick the insight backend from configuration.

    The OpenAI backend without an API key degrades to the rule-based one.
    """
    rules = RuleBasedInsightGenerator()
    config = settings.insights

    if config.backend != InsightBackend.OPENAI:
        return rules

    if settings.openai_api_key is None:
        logger.warning("openai_api_key_missing", fallback=rules.name)
        return rules

    return OpenAIInsightGenerator(
        api_key=settings.openai_api_key.get_secret_value(),
        model=config.model,
        api_base=config.api_base,
        timeout=config.timeout_seconds,
        max_tokens=config.max_tokens,
        cache_size=config.cache_size,
        fallback=rules,
        transport=transport,
    )


__all__ = [
    "InsightGenerator",
    "OpenAIInsightGenerator",
    "RuleBasedInsightGenerator",
    "build_insight_generator",
    "risk_reward_ratio",
]
