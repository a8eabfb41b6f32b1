"""Text-completion client used by chat and the remote risk assessor.

Two providers are supported: an OpenAI-compatible chat-completions endpoint
called with ``requests`` and Google Gemini through ``google-genai``. Every
failure surfaces as :class:`DependencyError` so callers can fall back.
"""
import json
import re
from typing import Any, Dict, List, Optional

import requests
from flask import current_app
from google import genai
from google.genai import types

from utils.errors import DependencyError


def _first_json_block(text: str) -> str:
    """Extract the first JSON object block from free-form text."""
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end != -1 and end > start:
        return text[start : end + 1]
    return text


def safe_json_loads(raw_text: str) -> Dict[str, Any]:
    """Parse JSON robustly, tolerating leading/trailing noise or code fences."""
    cleaned = (raw_text or "").strip()
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*", "", cleaned).strip()
    cleaned = re.sub(r"```$", "", cleaned).strip()
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        try:
            payload = json.loads(_first_json_block(cleaned))
        except json.JSONDecodeError as exc:
            raise DependencyError("Completion service returned malformed JSON") from exc
    if not isinstance(payload, dict):
        raise DependencyError("Completion service returned a non-object JSON payload")
    return payload


class CompletionClient:
    def __init__(
        self,
        provider: str,
        api_key: str,
        model: str,
        timeout: float,
        api_url: Optional[str] = None,
    ) -> None:
        self.provider = (provider or "openai").lower()
        self.api_key = api_key or ""
        self.model = model
        self.timeout = timeout
        self.api_url = api_url

    @classmethod
    def from_config(cls, config) -> "CompletionClient":
        provider = (config.get("AI_PROVIDER") or "openai").lower()
        timeout = float(config.get("AI_TIMEOUT_SECONDS", 15))
        if provider == "gemini":
            return cls(provider, config.get("GEMINI_API_KEY", ""), config.get("GEMINI_TEXT_MODEL", "gemini-2.5-flash"), timeout)
        return cls(
            "openai",
            config.get("OPENAI_API_KEY", ""),
            config.get("OPENAI_MODEL", "gpt-3.5-turbo"),
            timeout,
            api_url=config.get("OPENAI_API_URL"),
        )

    @property
    def available(self) -> bool:
        return bool(self.api_key)

    def complete(
        self,
        system_prompt: str,
        messages: List[Dict[str, str]],
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> str:
        """Return the model's reply text for ``messages`` (``role``/``content`` dicts)."""
        if not self.available:
            raise DependencyError(f"{self.provider} API key is not configured")
        if self.provider == "gemini":
            return self._complete_gemini(system_prompt, messages, max_tokens, temperature)
        return self._complete_openai(system_prompt, messages, max_tokens, temperature)

    def _complete_openai(self, system_prompt: str, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> str:
        payload = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        current_app.logger.info(
            "Completion request dispatch",
            extra={"provider": "openai", "model": self.model, "message_count": len(payload["messages"])},
        )
        try:
            response = requests.post(self.api_url, json=payload, headers=headers, timeout=self.timeout)
        except requests.Timeout as exc:
            current_app.logger.warning("Completion request timed out", extra={"provider": "openai", "timeout": self.timeout})
            raise DependencyError("Completion service timed out") from exc
        except requests.RequestException as exc:
            current_app.logger.warning("Completion request failed", extra={"provider": "openai", "error": str(exc)})
            raise DependencyError("Completion service unreachable") from exc

        if response.status_code != 200:
            current_app.logger.error(
                "Completion API non-200 response",
                extra={"provider": "openai", "status": response.status_code, "body": (response.text or "")[:500]},
            )
            raise DependencyError(f"Completion service returned HTTP {response.status_code}")

        try:
            body = response.json()
        except ValueError as exc:
            raise DependencyError("Completion service response was not JSON") from exc

        choices = body.get("choices") if isinstance(body, dict) else None
        choice = choices[0] if isinstance(choices, list) and choices else None
        message = choice.get("message") if isinstance(choice, dict) else None
        content = message.get("content") if isinstance(message, dict) else None
        if not isinstance(content, str) or not content.strip():
            current_app.logger.error("Completion service returned empty content", extra={"provider": "openai"})
            raise DependencyError("Completion service returned empty content")
        return content.strip()

    def _complete_gemini(self, system_prompt: str, messages: List[Dict[str, str]], max_tokens: int, temperature: float) -> str:
        client = genai.Client(
            api_key=self.api_key,
            http_options=types.HttpOptions(timeout=int(self.timeout * 1000)),
        )
        contents = [
            types.Content(
                role="model" if message.get("role") == "assistant" else "user",
                parts=[types.Part.from_text(text=message.get("content", ""))],
            )
            for message in messages
        ]
        config = types.GenerateContentConfig(
            system_instruction=system_prompt,
            max_output_tokens=max_tokens,
            temperature=temperature,
        )
        current_app.logger.info(
            "Completion request dispatch",
            extra={"provider": "gemini", "model": self.model, "message_count": len(contents)},
        )
        try:
            response = client.models.generate_content(model=self.model, contents=contents, config=config)
        except Exception as exc:  # pragma: no cover - relies on remote service
            current_app.logger.warning("Gemini request failed", extra={"provider": "gemini", "error": str(exc)})
            raise DependencyError("Completion service request failed") from exc

        text = (response.text or "").strip()
        if not text:
            raise DependencyError("Completion service returned empty content")
        return text


def get_completion_client() -> CompletionClient:
    return CompletionClient.from_config(current_app.config)
