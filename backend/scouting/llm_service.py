"""
LLM transport shared by every AI-backed stage.

Supports the OpenAI chat completions API and Gemini (google-generativeai).
One LLMClient is built at process start and handed to AIService; tests swap
in a fake. Every call has an explicit timeout and a small bounded retry with
exponential backoff. Responses that arrive but are not JSON are not retried.
"""

import json
import logging
import os
import re
import time
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import google.generativeai as genai
from openai import OpenAI

from scouting.errors import AIResponseError, AIUnavailableError

logger = logging.getLogger(__name__)

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```", re.IGNORECASE)


class LLMConfig:
    """Configuration for LLM service."""

    def __init__(self):
        # Provider can be "openai" (default) or "gemini"
        self.provider = os.getenv("LLM_PROVIDER", "openai").lower()

        # Keys (LLM_API_KEY takes precedence to avoid host overrides)
        if self.provider == "gemini":
            self.api_key = os.getenv("LLM_API_KEY") or os.getenv("GEMINI_API_KEY")
        else:
            self.api_key = os.getenv("LLM_API_KEY") or os.getenv("OPENAI_API_KEY")

        # Models: a fast one for interpretation/insights, a stronger one for reports
        default_model = "gemini-2.0-flash" if self.provider == "gemini" else "gpt-4o-mini"
        self.model = os.getenv("LLM_MODEL", default_model)
        self.report_model = os.getenv("LLM_REPORT_MODEL", "gemini-2.0-pro" if self.provider == "gemini" else "gpt-4o")
        self.enhance_model = os.getenv("LLM_ENHANCE_MODEL", self.report_model)

        # Endpoints
        self.api_base = os.getenv("OPENAI_API_BASE", "https://api.openai.com/v1")
        # For google-generativeai, api_endpoint should be just the host (no scheme/path)
        self.gemini_api_base = os.getenv("GEMINI_API_BASE", "https://generativelanguage.googleapis.com")

        self.temperature = float(os.getenv("LLM_TEMPERATURE", "0.3"))
        self.max_tokens = int(os.getenv("LLM_MAX_TOKENS", "4096"))
        self.timeout_seconds = float(os.getenv("LLM_TIMEOUT_SECONDS", "60"))
        self.max_retries = int(os.getenv("LLM_MAX_RETRIES", "2"))
        self.retry_backoff_seconds = float(os.getenv("LLM_RETRY_BACKOFF_SECONDS", "1.0"))
        self.available = bool(self.api_key)

        if not self.available:
            logger.warning("LLM not configured (missing API key); AI stages will fail.")


def extract_json(text: str) -> Dict[str, Any]:
    """
    Parse a JSON object out of model output.

    Accepts bare JSON, JSON wrapped in a markdown fence, or the first {...}
    blob in surrounding prose. Raises AIResponseError otherwise.
    """
    if not text or not text.strip():
        raise AIResponseError("Empty response from model")

    candidates = [text.strip()]
    fenced = _FENCE_RE.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start:end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
        raise AIResponseError("Model response JSON is not an object")

    raise AIResponseError(f"Failed to parse model response as JSON; raw text: {text[:400]}")


class LLMClient:
    """Thin provider wrapper: prompt in, text (or parsed JSON) out."""

    def __init__(self, config: Optional[LLMConfig] = None):
        self.config = config or LLMConfig()
        self._openai: Optional[OpenAI] = None
        self._gemini_ready = False

    def _openai_client(self) -> OpenAI:
        if self._openai is None:
            self._openai = OpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base,
                timeout=self.config.timeout_seconds,
                max_retries=0,  # retries handled in _with_retry
            )
        return self._openai

    def _configure_gemini(self):
        if not self._gemini_ready:
            parsed = urlparse(self.config.gemini_api_base)
            api_endpoint = parsed.netloc or parsed.path or self.config.gemini_api_base
            genai.configure(api_key=self.config.api_key, client_options={"api_endpoint": api_endpoint})
            self._gemini_ready = True

    def _call_openai(self, prompt: str, model: str, temperature: float, json_mode: bool) -> str:
        kwargs = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        response = self._openai_client().chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=self.config.max_tokens,
            **kwargs,
        )
        return (response.choices[0].message.content or "").strip()

    def _call_gemini(self, prompt: str, model: str, temperature: float, json_mode: bool) -> str:
        self._configure_gemini()
        model_name = model if model.startswith("models/") else f"models/{model}"
        generation_config = {"temperature": temperature, "max_output_tokens": self.config.max_tokens}
        if json_mode:
            generation_config["response_mime_type"] = "application/json"
        gen_response = genai.GenerativeModel(model_name).generate_content(
            prompt,
            generation_config=generation_config,
            request_options={"timeout": self.config.timeout_seconds},
        )
        text_out = ""
        if getattr(gen_response, "candidates", None):
            for part in gen_response.candidates[0].content.parts:
                if hasattr(part, "text"):
                    text_out = part.text
                    break
        if not text_out:
            text_out = (getattr(gen_response, "text", "") or "").strip()
        return text_out

    def _with_retry(self, call, *args) -> str:
        attempts = self.config.max_retries + 1
        for attempt in range(1, attempts + 1):
            try:
                return call(*args)
            except Exception as e:
                if attempt == attempts:
                    raise AIUnavailableError(f"LLM call failed after {attempts} attempt(s): {e}") from e
                delay = self.config.retry_backoff_seconds * (2 ** (attempt - 1))
                logger.warning(f"LLM call failed (attempt {attempt}/{attempts}): {e}; retrying in {delay:.1f}s")
                time.sleep(delay)
        raise AIUnavailableError("LLM call failed")

    def complete(
        self,
        prompt: str,
        *,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        json_mode: bool = True,
    ) -> str:
        """Send one prompt and return the raw text response."""
        if not self.config.available:
            raise AIUnavailableError("LLM not configured (missing API key)")

        model = model or self.config.model
        temperature = self.config.temperature if temperature is None else temperature
        call = self._call_gemini if self.config.provider == "gemini" else self._call_openai

        logger.info(f"Calling LLM provider={self.config.provider} model={model}")
        started = time.time()
        text = self._with_retry(call, prompt, model, temperature, json_mode)
        logger.debug(f"LLM raw response ({int((time.time() - started) * 1000)} ms): {text[:400]}")
        if not text:
            raise AIResponseError("No response from model")
        return text

    def complete_json(self, prompt: str, **kwargs) -> Dict[str, Any]:
        return extract_json(self.complete(prompt, **kwargs))
