"""Insights from an OpenAI-compatible chat completions API."""

from collections import OrderedDict

import httpx

from signal_analyzer.errors import InsightError
from signal_analyzer.insights.base import InsightGenerator
from signal_analyzer.signals.models import TradeSignal
from signal_analyzer.utils import get_logger

logger = get_logger(__name__)

SYSTEM_PROMPT = (
    "You are an expert trading analyst. Given a trade signal, comment briefly on its "
    "risk/reward, the levels chosen and what to watch before entry. Be factual and specific."
)


class OpenAIInsightGenerator(InsightGenerator):
    """Chat completions backend. Results are cached per signal id, least recently used evicted first."""

    name = "openai"

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        api_base: str = "https://api.openai.com/v1",
        timeout: float = 30.0,
        max_tokens: int = 400,
        fallback: InsightGenerator | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        cache_size: int = 256,
    ):
        self.api_key = api_key
        self.model = model
        self.url = f"{api_base.rstrip('/')}/chat/completions"
        self.timeout = timeout
        self.max_tokens = max_tokens
        self.fallback = fallback
        self.transport = transport
        self.cache_size = cache_size
        self._cache: OrderedDict[str, str] = OrderedDict()

    async def generate(self, signal: TradeSignal) -> str:
        if signal.id in self._cache:
            self._cache.move_to_end(signal.id)
            return self._cache[signal.id]

        try:
            text = await self._complete(self.build_prompt(signal))
        except InsightError as e:
            if self.fallback is None:
                raise
            logger.warning("insight_fallback", signal_id=signal.id, error=str(e))
            return await self.fallback.generate(signal)

        self._cache[signal.id] = text
        while len(self._cache) > self.cache_size:
            self._cache.popitem(last=False)
        return text

    @staticmethod
    def build_prompt(signal: TradeSignal) -> str:
        levels = ", ".join(f"TP{n}={tp}" for n, tp in enumerate(signal.take_profits, start=1))
        return (
            f"{signal.direction.value.upper()} {signal.asset} ({signal.market_type.value}) "
            f"from {signal.provider}. Entry {signal.entry_price}, "
            f"stop-loss {signal.stop_loss if signal.stop_loss is not None else 'none'}, "
            f"{levels or 'no take-profit levels'}. Opened {signal.timestamp.isoformat()}."
        )

    async def _complete(self, prompt: str) -> str:
        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.2,
            "max_tokens": self.max_tokens,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(self.url, json=payload, headers=headers)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as e:
            raise InsightError(f"insight API returned HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise InsightError(f"insight API request failed: {e}") from e
        except ValueError as e:
            raise InsightError("insight API returned invalid JSON") from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise InsightError("insight API response has no message content") from e

        if not isinstance(content, str) or not content.strip():
            raise InsightError("insight API returned an empty message")
        return content.strip()
