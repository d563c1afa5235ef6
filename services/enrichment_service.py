"""
Enrichment service for product titles.

Asks Claude for a short Chinese product name and a concrete usage scenario
per title. A batch either comes back complete (same length and order as
the input) or as an empty list; callers decide whether empty is fatal.
"""

import json
import re
import time
from typing import Callable, Optional
import structlog

import anthropic

from config import settings
from exceptions import EnrichmentError
from models.enrichment import ProductSummary, DebugStep
from utils.text_utils import strip_quotes

logger = structlog.get_logger(__name__)

CHECK_TITLE = "New Interactive Elephant Toy for Toddlers"

_FENCED_ARRAY_RE = re.compile(r"```(?:json)?\s*(\[[\s\S]*\])\s*```")


def _now_ms() -> int:
    return int(time.time() * 1000)


def parse_summary_array(text: str) -> Optional[list]:
    """
    Pull a JSON array out of a model response.

    Tries the whole text, then a fenced ```json block, then the last
    parseable [...] span (scanning start brackets from the right).
    """
    text = (text or "").strip()

    try:
        data = json.loads(text)
        if isinstance(data, list):
            return data
    except json.JSONDecodeError:
        pass

    match = _FENCED_ARRAY_RE.search(text)
    if match:
        try:
            data = json.loads(match.group(1))
            if isinstance(data, list):
                return data
        except json.JSONDecodeError:
            pass

    end = text.rfind("]")
    if end == -1:
        return None

    starts = [i for i, ch in enumerate(text[:end]) if ch == "["]
    for start in reversed(starts):
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError:
            continue
        if isinstance(data, list):
            return data

    return None


def normalize_summaries(items: list) -> list[ProductSummary]:
    """Strip quote marks and whitespace from each name/scenario."""
    summaries = []
    for item in items:
        item = item if isinstance(item, dict) else {}
        summaries.append(ProductSummary(
            name=strip_quotes(item.get("name")),
            scenario=strip_quotes(item.get("scenario")),
        ))
    return summaries


def plan_batches(titles: list[str], batch_size: int) -> list[list[tuple[int, str]]]:
    """
    Split row titles into batches of `batch_size` rows.

    Each batch lists (row position, title) for rows with a non-empty title,
    so summaries map back to their rows even when some titles are blank.
    """
    batches = []
    for start in range(0, len(titles), batch_size):
        batch = [
            (position, str(title).strip())
            for position, title in enumerate(titles[start:start + batch_size], start=start)
            if title is not None and str(title).strip()
        ]
        batches.append(batch)
    return batches


class EnrichmentService:
    """
    Summarize product titles with Claude.

    Credentials come from the request when given, otherwise from settings.
    """

    MAX_TOKENS = settings.enrichment_max_tokens

    SYSTEM_PROMPT = """You are a senior cross-border e-commerce product selection expert.
You read English marketplace product titles and write, for each one, the name and
use case a Chinese product buyer would use.

IMPORTANT: Return ONLY a JSON array, no markdown, no explanation, no code blocks.

For every title return an object with:
- name: Chinese product name, at most 10 Chinese characters. Core attribute or
  audience + core product word. No English letters, no promotional words
  (New, Hot Sale, Best Gift, years), no sizes or counts.
- scenario: concrete usage scenario, at most 15 Chinese characters, as
  audience + activity or occasion + recipient. Never generic phrases such as
  "daily use".

Examples:
"New Interactive Elephant Toy for Toddlers" -> {"name": "幼儿大象互动玩具", "scenario": "幼儿感官开发/亲子互动"}
"NeeDoh Good Vibes Squishy Stress Ball with Messages" -> {"name": "正能量解压捏捏乐", "scenario": "办公室解压/情绪调节"}

The array must have exactly one object per input title, in input order."""

    def __init__(self, client_factory: Optional[Callable[[str], object]] = None):
        self.client_factory = client_factory or (lambda api_key: anthropic.AsyncAnthropic(api_key=api_key))

    def _resolve(self, api_key: Optional[str], model: Optional[str]) -> tuple[Optional[str], str]:
        return api_key or settings.anthropic_api_key, model or settings.enrichment_model

    @staticmethod
    def build_prompt(titles: list[str]) -> str:
        numbered = "\n".join(f"{i}. {title}" for i, title in enumerate(titles, start=1))
        return f"Return a JSON array of {len(titles)} objects for these titles:\n{numbered}"

    async def _complete(self, titles: list[str], api_key: str, model: str) -> str:
        client = self.client_factory(api_key)
        response = await client.messages.create(
            model=model,
            max_tokens=self.MAX_TOKENS,
            system=self.SYSTEM_PROMPT,
            messages=[{"role": "user", "content": self.build_prompt(titles)}]
        )
        return response.content[0].text

    async def summarize_batch(
        self,
        titles: list[str],
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ) -> list[ProductSummary]:
        """
        Summarize one batch of titles.

        Returns:
            One summary per title in input order, or [] on any failure
        """
        api_key, model = self._resolve(api_key, model)
        if not api_key or not titles:
            logger.warning("enrichment_skipped", has_key=bool(api_key), titles=len(titles))
            return []

        try:
            text = await self._complete(titles, api_key, model)
        except anthropic.APIError as e:
            logger.error("enrichment_api_error", model=model, error=str(e))
            return []
        except Exception as e:
            logger.error("enrichment_request_failed", model=model, error=str(e))
            return []

        items = parse_summary_array(text)
        if items is None:
            logger.error("enrichment_unparseable", response_preview=text[:500])
            return []

        if len(items) != len(titles):
            logger.error("enrichment_length_mismatch", expected=len(titles), received=len(items))
            return []

        summaries = normalize_summaries(items)
        logger.info("enrichment_batch_completed", model=model, count=len(summaries))
        return summaries

    async def enrich_titles(
        self,
        titles: list[str],
        api_key: Optional[str] = None,
        model: Optional[str] = None
    ) -> list[Optional[ProductSummary]]:
        """
        Summarize every row title, batch by batch.

        Rows with an empty title get None.

        Raises:
            EnrichmentError: If any batch comes back empty
        """
        results: list[Optional[ProductSummary]] = [None] * len(titles)
        batches = plan_batches(titles, settings.enrichment_batch_size)

        for number, batch in enumerate(batches, start=1):
            if not batch:
                continue
            summaries = await self.summarize_batch([title for _, title in batch], api_key, model)
            if not summaries:
                raise EnrichmentError(
                    f"Enrichment failed for batch {number}/{len(batches)}",
                    details={"batch": number, "total_batches": len(batches)}
                )
            for (position, _), summary in zip(batch, summaries):
                results[position] = summary

        return results

    async def check_connection(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        title: str = CHECK_TITLE
    ) -> tuple[bool, list[DebugStep]]:
        """
        Run one test title through the model, recording each step.

        Returns:
            (success, steps)
        """
        api_key, model = self._resolve(api_key, model)
        steps: list[DebugStep] = []

        def add(step: str, status: str, message: str, data=None) -> None:
            steps.append(DebugStep(step=step, status=status, message=message, data=data, timestamp=_now_ms()))

        add("init", "success", f"Testing enrichment connection (model: {model})")

        if not api_key:
            add("credentials", "error", "API key is missing")
            return False, steps

        prompt = self.build_prompt([title])
        add("prompt", "success", "Prompt built", {"prompt_preview": prompt[:100]})

        started = _now_ms()
        try:
            text = await self._complete([title], api_key, model)
        except Exception as e:
            logger.warning("enrichment_check_failed", model=model, error=str(e))
            add("request", "error", str(e))
            return False, steps

        add("response", "success", f"Response received ({_now_ms() - started}ms)", {"raw_text": text})

        items = parse_summary_array(text)
        if not items:
            add("parse", "error", "No JSON array found in response", {"raw_text": text})
            return False, steps

        summaries = normalize_summaries(items)
        add("parse", "success", "Parsed JSON result", {"result": summaries[0].model_dump()})
        return True, steps


# Singleton instance
_enrichment_service: Optional[EnrichmentService] = None


def get_enrichment_service() -> EnrichmentService:
    """Get or create EnrichmentService instance."""
    global _enrichment_service
    if _enrichment_service is None:
        _enrichment_service = EnrichmentService()
    return _enrichment_service
