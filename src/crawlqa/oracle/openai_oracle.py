"""
Vision-model decision oracle backed by the OpenAI chat completions API.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI

from ..config.settings import OracleConfig
from ..core.errors import OracleError
from .base import DecisionOracle, OracleObservation
from .json_extract import extract_json

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a QA engineer exploring a web application to build regression tests.

Given a screenshot and the list of interactive elements on the current page, propose
the most valuable interaction scenarios a real user would perform: submitting forms
with realistic data, opening dialogs and menus, navigating to important sections.

Use only selectors from the element list. For login forms use the placeholders
{auth_username} and {auth_password} as fill values.

Respond with JSON only:
{
  "scenarios": [
    {
      "name": "short unique name",
      "description": "what the scenario checks",
      "priority": "high|medium|low",
      "steps": [
        {"action": "click|fill|select|check|hover|submit",
         "selector": "CSS selector from the list",
         "textContent": "visible text of the element",
         "elementType": "button|input|link|select|...",
         "value": "value for fill/select"}
      ],
      "expected_final_outcome": "what should happen"
    }
  ]
}

Order scenarios from most to least important."""


class OpenAIOracle(DecisionOracle):
    """Asks a vision-capable chat model for scenarios."""

    def __init__(self, config: Optional[OracleConfig] = None, client: Optional[AsyncOpenAI] = None):
        self.config = config or OracleConfig()
        if client is None:
            if not self.config.api_key:
                raise OracleError(
                    "OpenAI API key is required. Set OPENAI_API_KEY or oracle.api_key."
                )
            client = AsyncOpenAI(api_key=self.config.api_key)
        self.client = client

    def _build_prompt(self, observation: OracleObservation) -> str:
        elements = observation.elements[:self.config.max_elements]
        formatted = []
        for index, element in enumerate(elements, 1):
            formatted.append(
                f"{index}. {str(element.get('element_type', 'element')).upper()} - "
                f"\"{element.get('text') or 'no text'}\"\n"
                f"   Selector: {element.get('selector')}\n"
                f"   Attributes: {json.dumps(element.get('attributes', {}))}"
            )

        kind = "an in-page UI state (dialog/panel) of" if observation.is_virtual else "the page"
        return (
            f"You are looking at {kind} {observation.url} titled \"{observation.title}\".\n\n"
            f"Interactive elements:\n\n" + ("\n\n".join(formatted) or "(none found)")
        )

    async def suggest_scenarios(self, observation: OracleObservation) -> List[Dict[str, Any]]:
        content: List[Dict[str, Any]] = []
        if observation.screenshot_base64:
            content.append({
                "type": "image_url",
                "image_url": {"url": f"data:image/png;base64,{observation.screenshot_base64}"},
            })
        content.append({"type": "text", "text": self._build_prompt(observation)})

        try:
            response = await self.client.chat.completions.create(
                model=self.config.model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": content},
                ],
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
            )
            response_text = response.choices[0].message.content
        except Exception as e:
            raise OracleError(f"Oracle request failed: {e}") from e

        try:
            payload = extract_json(response_text)
        except ValueError as e:
            raise OracleError(f"Oracle answer was not JSON: {e}") from e

        scenarios = payload.get('scenarios', []) if isinstance(payload, dict) else payload
        if not isinstance(scenarios, list):
            raise OracleError("Oracle answer has no scenario list")

        logger.info(f"🧠 Oracle proposed {len(scenarios)} scenario(s) for {observation.url}")
        return scenarios
