# services/gemini_service.py
from __future__ import annotations

import logging
from typing import Any, Iterable, List, Optional

from google import genai
from google.genai import types

from config import settings
from errors import EmptyCompletion, ServiceUnavailable
from models import ItineraryResult, ItinerarySource
from request_context import get_request_id

log = logging.getLogger("llm")

GENERIC_FAILURE = "Failed to generate itinerary. Please check your inputs or API key and try again."


def build_prompt(destination: str, budget: str, interests: Iterable[str], duration_days: str | int) -> str:
    interests = list(interests)
    if interests:
        interests_clause = f"The traveler's main interests are: {', '.join(interests)}."
    else:
        interests_clause = "The traveler is open to all kinds of activities."

    return f"""
You are an expert travel agent. Create a detailed, day-by-day travel itinerary for a trip to {destination}.

**Constraints & Preferences:**
- **Budget:** The approximate budget for the trip is {budget}. Please suggest a mix of activities and dining options (from budget-friendly to moderate) that align with this.
- **Interests:** {interests_clause} Prioritize suggestions that match these interests.
- **Duration:** Please create a {duration_days}-day itinerary.
- **Real-time Data:** Use Google Search to find up-to-date information for suggestions like opening hours, ticket prices, and local recommendations. Ensure the suggestions are current and relevant.

**Output Format:**
- Format the entire response as Markdown.
- Use headings for each day (e.g., "### Day 1: Arrival and Exploration").
- For each day, provide a morning, afternoon, and evening plan.
- For each activity or restaurant, provide a brief description and why it's recommended. If possible, include estimated costs.
- End with a "Budget Summary" section, giving a rough breakdown of potential costs.
- Maintain a helpful, enthusiastic, and encouraging tone.
""".strip()


# ---------- response helpers (SDK objects or plain dicts) ----------
def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)

def _first_candidate(resp: Any) -> Any:
    candidates = _field(resp, "candidates") or []
    return candidates[0] if candidates else None

def extract_text(resp: Any) -> str:
    text = _field(resp, "text")
    if isinstance(text, str) and text.strip():
        return text
    content = _field(_first_candidate(resp), "content")
    parts = _field(content, "parts") or []
    chunks = [t for t in (_field(p, "text") for p in parts) if isinstance(t, str)]
    return "".join(chunks)

def extract_sources(resp: Any) -> List[ItinerarySource]:
    """Grounding chunks with a non-empty web.uri and a web.title, in service order."""
    metadata = _field(_first_candidate(resp), "grounding_metadata")
    chunks = _field(metadata, "grounding_chunks") or []
    sources: List[ItinerarySource] = []
    for chunk in chunks:
        web = _field(chunk, "web")
        uri = _field(web, "uri")
        title = _field(web, "title")
        if isinstance(uri, str) and uri and isinstance(title, str):
            sources.append(ItinerarySource(uri=uri, title=title))
    dropped = len(chunks) - len(sources)
    if dropped:
        log.debug("Dropped malformed grounding chunks", extra={"dropped": dropped})
    return sources


class ItineraryService:
    """One grounded, non-streamed Gemini call per itinerary. No retry."""

    def __init__(self, client: Optional[Any] = None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.GEMINI_MODEL

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = genai.Client(api_key=settings.GEMINI_API_KEY)
        return self._client

    async def generate(
        self,
        destination: str,
        budget_description: str,
        interests: Iterable[str],
        duration_days: str | int,
    ) -> ItineraryResult:
        prompt = build_prompt(destination, budget_description, interests, duration_days)
        rid = get_request_id()
        config = types.GenerateContentConfig(
            tools=[types.Tool(google_search=types.GoogleSearch())],
        )

        try:
            resp = await self.client.aio.models.generate_content(
                model=self.model,
                contents=prompt,
                config=config,
            )
        except Exception as e:
            log.exception("Gemini itinerary generation failed", extra={"request_id": rid, "model": self.model})
            raise ServiceUnavailable(f"completion call failed: {e}", user_message=GENERIC_FAILURE) from e

        text = extract_text(resp)
        if not text.strip():
            log.warning("Gemini returned an empty itinerary", extra={"request_id": rid, "model": self.model})
            raise EmptyCompletion("completion had no text", user_message=GENERIC_FAILURE)

        sources = extract_sources(resp)
        log.info("LLM call ok (grounded)", extra={
            "request_id": rid,
            "model": self.model,
            "chars": len(text),
            "sources": len(sources),
        })
        return ItineraryResult(text=text, sources=sources)
