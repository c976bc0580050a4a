# marketdesk/analysis/gemini_client.py
"""
Market News Summariser
======================

One round trip to Gemini's generateContent endpoint that turns a topic
into a hot sector, a short summary and a list of stock picks. The only
thing the quote side consumes is the list of symbols.

Usage:
    analyst = GeminiAnalyst()
    analysis = analyst.analyze(api_key, "AI chips")

    analysis.hot_sector        # "Semiconductors"
    analysis.symbols()         # ["NVDA.US", "AMD.US"]
"""

import json
import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "US Stock Market"

PROMPT_TEMPLATE = """
You are a financial analyst.
Target Keyword: "{topic}".
Analyze current market news based on this keyword.

Return a STRICT JSON object with this exact structure (no markdown, just raw JSON):
{{
  "summary": "Brief summary in Traditional Chinese (within 50 words)",
  "hot_sector": "Name of the hottest sector",
  "stocks": [
    {{ "symbol": "AAPL.US", "name": "Apple", "reason": "Why it's hot" }},
    {{ "symbol": "NVDA.US", "name": "Nvidia", "reason": "Why it's hot" }}
  ]
}}
Important:
1. Convert all US stock tickers to "TICKER.US".
2. Do not include ```json or ``` markers.
"""

_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)


class AnalysisError(Exception):
    """Summarisation request failed"""
    status_code = 500


class MissingApiKeyError(AnalysisError):
    status_code = 400


class ModelNotFoundError(AnalysisError):
    """Key lacks access to the model, or the model name is wrong"""
    status_code = 404


class MalformedAnalysisError(AnalysisError):
    """Model answered, but not with the JSON shape we asked for"""

    def __init__(self, message: str, raw_text: str):
        super().__init__(message)
        self.raw_text = raw_text


@dataclass
class StockPick:
    symbol: str
    name: str = ""
    reason: str = ""


@dataclass
class MarketAnalysis:
    summary: str = ""
    hot_sector: str = ""
    stocks: List[StockPick] = field(default_factory=list)

    def symbols(self) -> List[str]:
        return [pick.symbol for pick in self.stocks if pick.symbol]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'MarketAnalysis':
        stocks = []
        for item in data.get("stocks") or []:
            if isinstance(item, dict) and item.get("symbol"):
                stocks.append(StockPick(
                    symbol=str(item["symbol"]).strip(),
                    name=str(item.get("name") or ""),
                    reason=str(item.get("reason") or "")
                ))
        return cls(
            summary=str(data.get("summary") or ""),
            hot_sector=str(data.get("hot_sector") or ""),
            stocks=stocks
        )


def build_prompt(topic: Optional[str] = None) -> str:
    return PROMPT_TEMPLATE.format(topic=topic or DEFAULT_TOPIC)


def strip_fences(text: str) -> str:
    """Remove markdown code fences the model adds despite being told not to"""
    return _FENCE.sub("", text or "").strip()


def parse_analysis(text: str) -> MarketAnalysis:
    cleaned = strip_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise MalformedAnalysisError(f"Model returned invalid JSON: {e}", cleaned) from e
    if not isinstance(data, dict):
        raise MalformedAnalysisError("Model returned JSON that is not an object", cleaned)
    return MarketAnalysis.from_dict(data)


class GeminiAnalyst:
    """
    Thin client for Gemini generateContent.

    The API key is supplied per call (the dashboard user pastes their own).
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        session: Optional[requests.Session] = None
    ):
        from config import settings

        self.base_url = (base_url or settings.GEMINI_BASE_URL).rstrip("/")
        self.model = model or settings.GEMINI_MODEL
        self.timeout = timeout or settings.GEMINI_TIMEOUT
        self._session = session or requests.Session()

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/v1beta/models/{self.model}:generateContent"

    def analyze(self, api_key: str, topic: Optional[str] = None) -> MarketAnalysis:
        """
        Summarise market news for topic.

        Raises:
            MissingApiKeyError: api_key is empty
            ModelNotFoundError: HTTP 404 from the API
            MalformedAnalysisError: response text is not the expected JSON
            AnalysisError: any other HTTP or network failure
        """
        if not api_key:
            raise MissingApiKeyError("API Key is missing")

        body = {
            "contents": [{"parts": [{"text": build_prompt(topic)}]}],
            "generationConfig": {"responseMimeType": "application/json"}
        }

        try:
            response = self._session.post(
                self.endpoint,
                params={"key": api_key},
                json=body,
                timeout=self.timeout
            )
        except requests.RequestException as e:
            logger.error(f"Gemini request failed: {e}")
            raise AnalysisError(f"Gemini request failed: {e}") from e

        if response.status_code == 404:
            raise ModelNotFoundError(
                "API key lacks permission or the model does not exist. "
                "Create the key under a new project in Google AI Studio."
            )
        if response.status_code >= 400:
            logger.error(f"Gemini returned HTTP {response.status_code}: {response.text[:200]}")
            raise AnalysisError(self._error_message(response))

        try:
            payload = response.json()
        except ValueError as e:
            raise MalformedAnalysisError(f"Response is not JSON: {e}", response.text[:500]) from e

        text = self._extract_text(payload)
        analysis = parse_analysis(text)
        logger.info(f"Analysis for '{topic or DEFAULT_TOPIC}': {len(analysis.stocks)} picks")
        return analysis

    @staticmethod
    def _extract_text(payload: Dict[str, Any]) -> str:
        try:
            parts = payload["candidates"][0]["content"]["parts"]
        except (KeyError, IndexError, TypeError):
            raise MalformedAnalysisError("Response has no candidates", json.dumps(payload)[:500])
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            return response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            return f"Gemini returned HTTP {response.status_code}"
