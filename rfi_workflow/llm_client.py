from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List

from openai import APIError, AzureOpenAI, OpenAI

from .config import LLMConfig, LLMProviderConfig


LOGGER = logging.getLogger(__name__)

_INVALID_JSON_HINT = (
    "The previous reply was not valid JSON. Reply strictly with valid JSON matching the schema."
)
_TRUNCATED_HINT = (
    "The previous reply was cut off by the length limit. Shorten the notes but keep the "
    "structure and return valid JSON."
)


class _RetryableReply(Exception):
    """A reply worth asking for again, carrying the hint for the next attempt."""

    def __init__(self, hint: str, detail: str) -> None:
        super().__init__(detail)
        self.hint = hint


def _from_env(value: str | None, env_name: str | None) -> str | None:
    if value:
        return value
    if env_name:
        return os.environ.get(env_name) or None
    return None


def _rejects_cache_key(error: BaseException) -> bool:
    """Whether a provider error complains about the prompt_cache_key parameter."""

    message = str(error).lower()
    return "prompt_cache_key" in message and any(
        word in message for word in ("unsupported", "unknown", "not allowed", "invalid", "cannot")
    )


@dataclass(slots=True)
class _Provider:
    name: str
    model: str
    conf: LLMProviderConfig
    client: OpenAI
    send_cache_key: bool = True


def _open_client(conf: LLMProviderConfig, api_key: str, model: str) -> OpenAI:
    azure_endpoint = _from_env(conf.azure_endpoint, conf.azure_endpoint_env)
    if azure_endpoint:
        return AzureOpenAI(
            api_key=api_key,
            azure_endpoint=azure_endpoint,
            azure_deployment=model,
            api_version=conf.api_version,
        )
    return OpenAI(
        api_key=api_key,
        base_url=_from_env(conf.base_url, conf.base_url_env),
        organization=conf.organization,
    )


class LLMClient:
    """Chat-completion transport for the note drafter.

    Replies must be JSON objects. A truncated or unparsable reply is retried on
    the same provider with a corrective system hint, up to ``max_retries``
    attempts; after that the next provider in priority order is tried.
    """

    def __init__(self, conf: LLMConfig) -> None:
        self._max_attempts = conf.max_retries
        self._providers: List[_Provider] = []

        for priority, provider_conf in conf.provider_sequence:
            name = provider_conf.name or f"provider-{priority}"
            api_key = _from_env(provider_conf.api_key, provider_conf.api_key_env)
            model = _from_env(provider_conf.model, provider_conf.model_env)
            if not api_key or not model:
                LOGGER.warning(
                    "Skipping LLM provider '%s': %s is not configured",
                    name,
                    "API key" if not api_key else "model identifier",
                )
                continue
            client = _open_client(provider_conf, api_key, model)
            self._providers.append(_Provider(name, model, provider_conf, client))

        if not self._providers:
            raise RuntimeError(
                "No valid LLM providers configured. Ensure that API keys and model identifiers "
                "are provided in the configuration or environment."
            )

    def generate(
        self,
        messages: List[Dict[str, str]],
        prompt_cache_key: str | None = None,
    ) -> Dict[str, Any]:
        """Return the parsed JSON object from the first provider that produces one."""

        failures: List[str] = []
        for provider in self._providers:
            try:
                return self._generate_with_provider(provider, messages, prompt_cache_key)
            except RuntimeError as exc:
                LOGGER.warning("LLM provider '%s' failed: %s", provider.name, exc)
                failures.append(f"{provider.name}: {exc}")

        raise RuntimeError(f"All LLM providers failed: {', '.join(failures)}")

    def _generate_with_provider(
        self,
        provider: _Provider,
        messages: List[Dict[str, str]],
        prompt_cache_key: str | None,
    ) -> Dict[str, Any]:
        attempt_messages = [dict(msg) for msg in messages]
        for attempt in range(1, self._max_attempts + 1):
            try:
                return _parse_reply(self._complete(provider, attempt_messages, prompt_cache_key))
            except _RetryableReply as exc:
                if attempt == self._max_attempts:
                    raise RuntimeError(str(exc)) from exc
                LOGGER.warning(
                    "Retrying provider '%s' (%s/%s): %s",
                    provider.name,
                    attempt,
                    self._max_attempts,
                    exc,
                )
                attempt_messages = [dict(msg) for msg in messages]
                attempt_messages.append({"role": "system", "content": exc.hint})
        raise RuntimeError(f"Provider '{provider.name}' made no attempts")

    def _complete(
        self,
        provider: _Provider,
        messages: List[Dict[str, str]],
        prompt_cache_key: str | None,
    ) -> Any:
        params: Dict[str, Any] = {
            "model": provider.model,
            "messages": messages,
            "temperature": provider.conf.temperature,
            "max_tokens": provider.conf.max_output_tokens,
            "response_format": {"type": "json_object"},
            "timeout": provider.conf.request_timeout,
        }
        if prompt_cache_key and provider.send_cache_key:
            params["extra_body"] = {"prompt_cache_key": prompt_cache_key}

        try:
            response = provider.client.chat.completions.create(**params)
        except APIError as exc:
            if "extra_body" in params and _rejects_cache_key(exc):
                LOGGER.warning(
                    "Provider '%s' rejects prompt_cache_key; resending without it", provider.name
                )
                provider.send_cache_key = False
                return self._complete(provider, messages, prompt_cache_key)
            raise RuntimeError(f"LLM request failed: {exc}") from exc

        if not response.choices:
            raise RuntimeError("LLM response does not contain choices")
        return response.choices[0]


def _parse_reply(choice: Any) -> Dict[str, Any]:
    content = (choice.message.content or "").strip()
    finish_reason = getattr(choice, "finish_reason", None)

    if finish_reason == "length":
        raise _RetryableReply(_TRUNCATED_HINT, f"LLM response truncated: {content}")
    if finish_reason and finish_reason != "stop":
        raise RuntimeError(
            f"LLM response ended prematurely (finish_reason={finish_reason}): {content}"
        )

    try:
        payload = json.loads(content)
    except json.JSONDecodeError as exc:
        raise _RetryableReply(
            _INVALID_JSON_HINT, f"LLM response is not valid JSON: {content}"
        ) from exc

    if not isinstance(payload, dict):
        raise RuntimeError(f"LLM response is not a JSON object: {content}")
    return payload
