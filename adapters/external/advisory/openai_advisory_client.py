import json
import logging
from datetime import date
from typing import Any, Dict, List, Optional

import httpx
from pydantic import TypeAdapter, ValidationError

from config.settings import settings
from core.common.errors import AdvisoryError
from core.domain.entities.advisory_entity import AdvisorySuggestion
from core.domain.entities.economic_event_entity import EconomicEventEntity
from core.gateways.advisory_gateway import AdvisoryGateway

_EVENTS_ADAPTER = TypeAdapter(List[EconomicEventEntity])

TUNER_PROMPT = " ".join(
    [
        "You are an automated trading strategy tuner for a crypto spot bot.",
        "Given the current config, performance stats, recent trades, news and guardrail bounds,",
        "propose updated parameters that stay inside the guardrails.",
        "Respond ONLY with a JSON object matching this shape:",
        json.dumps(
            {
                "strategyName": "DynamicTrend",
                "params": {
                    "allocationPerTrade": 0.1,
                    "minTradeUsd": 10,
                    "lookback": 200,
                    "rsiBuy": 35,
                    "rsiSell": 70,
                    "bbPeriod": 20,
                    "bbStdDev": 2,
                    "risk": {"maxDailyDrawdown": 0.1, "trailingSlMultiplier": 2},
                    "regime": {"confidenceFloor": 0.4},
                },
                "notes": "Short rationale",
                "confidence": 0.7,
            }
        ),
        "Use conservative risk settings. Do not include any non-JSON text.",
    ]
)

CALENDAR_PROMPT = " ".join(
    [
        "You list scheduled macroeconomic releases that move crypto markets",
        "(FOMC, CPI, NFP, PCE, GDP, central bank rate decisions).",
        "Respond ONLY with a JSON object of the shape",
        json.dumps({"events": [{"date": "2024-01-31T19:00:00Z", "event": "FOMC Rate Decision", "impact": "HIGH"}]}),
        "with dates in UTC ISO-8601 and impact one of HIGH, MEDIUM, LOW.",
    ]
)


class OpenAIAdvisoryClient(AdvisoryGateway):
    """
    Advisory service over an OpenAI-compatible chat completions endpoint,
    always in JSON mode. Every response is schema-validated before it leaves
    this adapter; anything else raises AdvisoryError.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_sec: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._logger = logging.getLogger(self.__class__.__name__)
        self._api_key = api_key if api_key is not None else settings.OPENAI_API_KEY
        self._model = model or settings.OPENAI_MODEL
        self._base_url = (base_url or settings.OPENAI_BASE_URL).rstrip("/")
        self._client = client or httpx.AsyncClient(
            timeout=float(timeout_sec or settings.ADVISORY_TIMEOUT_SEC)
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def aclose(self) -> None:
        try:
            await self._client.aclose()
        except Exception as exc:  # noqa: BLE001
            self._logger.warning("Error closing OpenAIAdvisoryClient: %s", exc)

    async def _complete_json(self, system: str, user: str) -> Dict[str, Any]:
        if not self._api_key:
            raise AdvisoryError("OPENAI_API_KEY not set")

        body = {
            "model": self._model,
            "temperature": 0.2,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
        }
        try:
            resp = await self._client.post(
                f"{self._base_url}/chat/completions",
                json=body,
                headers={"Authorization": f"Bearer {self._api_key}"},
            )
        except httpx.HTTPError as exc:
            raise AdvisoryError(f"Advisory request failed: {exc}") from exc

        if resp.status_code >= 400:
            raise AdvisoryError(f"Advisory API failed: {resp.status_code} {resp.text[:500]}")

        try:
            content = resp.json()["choices"][0]["message"]["content"]
            parsed = json.loads(content)
        except (KeyError, IndexError, TypeError, ValueError) as exc:
            raise AdvisoryError(f"Advisory response is not valid JSON: {exc}") from exc

        if not isinstance(parsed, dict):
            raise AdvisoryError("Advisory response is not a JSON object")
        return parsed

    async def suggest_config(self, payload: Dict[str, Any]) -> AdvisorySuggestion:
        parsed = await self._complete_json(TUNER_PROMPT, json.dumps(payload, default=str))
        try:
            return AdvisorySuggestion.model_validate(parsed)
        except ValidationError as exc:
            raise AdvisoryError(f"Advisory response missing params: {exc}") from exc

    async def fetch_economic_calendar(self, start: date, end: date) -> List[EconomicEventEntity]:
        user = json.dumps({"from": start.isoformat(), "to": end.isoformat(), "minImpact": "HIGH"})
        parsed = await self._complete_json(CALENDAR_PROMPT, user)
        try:
            events = _EVENTS_ADAPTER.validate_python(parsed.get("events") or [])
        except ValidationError as exc:
            raise AdvisoryError(f"Economic calendar response is invalid: {exc}") from exc
        return [e.model_copy(update={"impact": str(e.impact).upper()}) for e in events]
