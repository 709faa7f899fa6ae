from __future__ import annotations

from typing import Any

from loguru import logger

from marketseg.services.completion_client import CompletionClient
from marketseg.services.json_extractor import extract_and_parse_json
from marketseg.services.prompt_store import render_prompt


class BaseStage:
    """Base for the LLM-driven stages.

    A stage renders one prompt from the catalog, sends it through the shared
    completion client and parses the reply with the resilient extractor.
    Each subclass owns its retry and fallback policy.
    """

    name: str = "base"

    def __init__(self, completion: CompletionClient | None = None):
        self.completion = completion or CompletionClient()

    async def complete(self, prompt_key: str, *, max_tokens: int, operation: str, **values: Any) -> str:
        prompt = render_prompt(prompt_key, **values)
        logger.debug(f"[{self.name}] {operation}: prompt {len(prompt)} chars")
        return await self.completion.generate_completion(prompt, max_tokens, operation)

    async def complete_json(self, prompt_key: str, *, max_tokens: int, operation: str, **values: Any) -> Any:
        response = await self.complete(prompt_key, max_tokens=max_tokens, operation=operation, **values)
        return extract_and_parse_json(response)
