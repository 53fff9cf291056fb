from __future__ import annotations

from dataclasses import dataclass
import json
import logging
import os
import threading
import time
from typing import Any
from urllib import request as urlrequest
from urllib.error import HTTPError, URLError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TaskRoute:
    provider: str
    model: str
    base_url: str
    api_key: str
    api_key_header: str
    timeout_s: int
    retries: int
    breaker_threshold: int
    breaker_cooldown_s: int
    max_tokens: int


@dataclass(eq=False)
class LLMError(Exception):
    code: str
    message: str
    provider: str
    task_type: str
    retryable: bool = False
    raw: str | None = None

    def __str__(self) -> str:
        return f"{self.code}({self.provider}/{self.task_type}): {self.message}"

    @property
    def is_parse_failure(self) -> bool:
        return self.code in {"invalid_json", "invalid_response"}


def _provider_defaults(provider: str) -> tuple[str, str]:
    provider = provider.lower().strip()
    if provider == "openrouter":
        return "https://openrouter.ai/api/v1", "OPENROUTER_API_KEY"
    if provider == "groq":
        return "https://api.groq.com/openai/v1", "GROQ_API_KEY"
    if provider == "litellm":
        return os.getenv("LITELLM_BASE_URL", "http://localhost:4000"), "LITELLM_API_KEY"
    return "https://api.openai.com/v1", "OPENAI_API_KEY"


def _load_route(task_type: str) -> TaskRoute:
    key = task_type.upper()
    provider = os.getenv(f"LLM_ROUTE_{key}_PROVIDER", "openai").strip().lower()
    default_base, default_key_env = _provider_defaults(provider)
    key_env = os.getenv(f"LLM_ROUTE_{key}_API_KEY_ENV", default_key_env).strip()
    api_key = os.getenv(key_env, "").strip()
    if not api_key:
        raise LLMError(
            code="not_configured",
            message=f"Missing API key (env: {key_env})",
            provider=provider,
            task_type=task_type,
        )
    return TaskRoute(
        provider=provider,
        model=os.getenv(f"LLM_ROUTE_{key}_MODEL", os.getenv("OPENAI_MODEL", "gpt-4o-mini")).strip(),
        base_url=os.getenv(f"LLM_ROUTE_{key}_BASE_URL", default_base).strip().rstrip("/"),
        api_key=api_key,
        api_key_header=os.getenv(f"LLM_ROUTE_{key}_API_KEY_HEADER", "Authorization").strip(),
        timeout_s=int(os.getenv(f"LLM_ROUTE_{key}_TIMEOUT_S", "30")),
        retries=int(os.getenv(f"LLM_ROUTE_{key}_RETRIES", "2")),
        breaker_threshold=int(os.getenv(f"LLM_ROUTE_{key}_BREAKER_THRESHOLD", "5")),
        breaker_cooldown_s=int(os.getenv(f"LLM_ROUTE_{key}_BREAKER_COOLDOWN_S", "60")),
        max_tokens=int(os.getenv(f"LLM_ROUTE_{key}_MAX_TOKENS", "1200")),
    )


def _empty_bucket() -> dict[str, float]:
    return {
        "calls": 0.0,
        "success": 0.0,
        "errors": 0.0,
        "retries": 0.0,
        "latency_ms_total": 0.0,
        "prompt_tokens_total": 0.0,
        "completion_tokens_total": 0.0,
    }


class LLMMediator:
    """Routes JSON-producing chat completions to an OpenAI-compatible provider.

    Each task type has its own route (``LLM_ROUTE_<TASK>_*``), retry budget and
    circuit breaker. Counters live in memory for the life of the process.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._failures: dict[str, int] = {}
        self._breaker_until: dict[str, float] = {}
        self._metrics: dict[str, dict[str, float]] = {}

    def get_metrics_snapshot(self) -> dict[str, Any]:
        with self._lock:
            now_ts = time.time()
            return {
                "routes": {key: dict(bucket) for key, bucket in self._metrics.items()},
                "breakers": {
                    key: {"failures": self._failures.get(key, 0), "open": until > now_ts}
                    for key, until in self._breaker_until.items()
                },
            }

    def generate_json(
        self,
        *,
        task_type: str,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
        max_tokens: int = 800,
        temperature: float = 0.7,
        seed: int | None = None,
    ) -> tuple[dict[str, Any], dict[str, Any]]:
        route = _load_route(task_type)
        breaker_key = f"{task_type}:{route.provider}"
        now_ts = time.time()
        with self._lock:
            breaker_open = self._breaker_until.get(breaker_key, 0) > now_ts
        if breaker_open:
            raise LLMError(
                code="circuit_open",
                message="Circuit breaker active for task/provider route",
                provider=route.provider,
                task_type=task_type,
                retryable=True,
            )

        payload = self._build_chat_payload(
            route=route,
            system_prompt=system_prompt,
            user_prompt=user_prompt,
            json_schema=json_schema,
            max_tokens=max_tokens,
            temperature=temperature,
            seed=seed,
        )
        start = time.perf_counter()
        try:
            response = self._call_with_retries(task_type, route, payload)
            parsed = self._parse_content(task_type, route, response)
        except LLMError as exc:
            self._record_failure(task_type, route, breaker_key, now_ts)
            logger.warning("LLM call failed: %s", exc)
            raise

        usage = response.get("usage") or {}
        self._record_success(
            task_type,
            route,
            breaker_key,
            latency_ms=(time.perf_counter() - start) * 1000.0,
            prompt_tokens=float(usage.get("prompt_tokens", 0) or 0),
            completion_tokens=float(usage.get("completion_tokens", 0) or 0),
        )
        return parsed, {
            "provider": route.provider,
            "model": route.model,
            "id": response.get("id"),
        }

    def _parse_content(
        self,
        task_type: str,
        route: TaskRoute,
        response: dict[str, Any],
    ) -> dict[str, Any]:
        try:
            content = response["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(
                code="invalid_response",
                message=f"Unexpected completion shape: {exc}",
                provider=route.provider,
                task_type=task_type,
            ) from exc
        if not isinstance(content, str):
            raise LLMError(
                code="invalid_response",
                message="LLM response content is not text",
                provider=route.provider,
                task_type=task_type,
            )
        try:
            parsed = json.loads(content)
        except json.JSONDecodeError as exc:
            raise LLMError(
                code="invalid_json",
                message=f"Failed to parse LLM JSON response: {exc}",
                provider=route.provider,
                task_type=task_type,
                raw=content,
            ) from exc
        if not isinstance(parsed, dict):
            raise LLMError(
                code="invalid_json",
                message="LLM JSON response is not an object",
                provider=route.provider,
                task_type=task_type,
                raw=content,
            )
        return parsed

    def _call_with_retries(
        self,
        task_type: str,
        route: TaskRoute,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        last_error: LLMError | None = None
        for attempt in range(route.retries + 1):
            try:
                return self._call_chat_completion(task_type, route, payload)
            except LLMError as exc:
                last_error = exc
                if not exc.retryable or attempt >= route.retries:
                    break
                self._track_retry(task_type, route)
                time.sleep(min(2**attempt, 3))
        assert last_error is not None
        raise last_error

    def _build_chat_payload(
        self,
        *,
        route: TaskRoute,
        system_prompt: str,
        user_prompt: str,
        json_schema: dict[str, Any],
        max_tokens: int,
        temperature: float,
        seed: int | None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": route.model,
            "messages": [
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            "temperature": temperature,
            "max_tokens": max(1, min(max_tokens, route.max_tokens)),
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": f"{route.provider}_schema",
                    "schema": json_schema,
                    "strict": True,
                },
            },
        }
        if seed is not None:
            payload["seed"] = seed
        return payload

    def _call_chat_completion(
        self,
        task_type: str,
        route: TaskRoute,
        payload: dict[str, Any],
    ) -> dict[str, Any]:
        headers = {"Content-Type": "application/json"}
        if route.api_key_header.lower() == "authorization":
            headers["Authorization"] = f"Bearer {route.api_key}"
        else:
            headers[route.api_key_header] = route.api_key

        req = urlrequest.Request(
            url=f"{route.base_url}/chat/completions",
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers=headers,
        )
        try:
            with urlrequest.urlopen(req, timeout=max(1, route.timeout_s)) as resp:
                return json.loads(resp.read().decode("utf-8"))
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            if exc.code in {400, 422} and "response_format" in payload:
                # Provider does not support structured output; ask for JSON in the prompt instead.
                logger.info("Route %s rejected response_format, retrying without it", task_type)
                fallback = dict(payload)
                fallback.pop("response_format", None)
                fallback["messages"] = fallback["messages"] + [
                    {
                        "role": "system",
                        "content": "Return ONLY valid JSON matching the requested schema.",
                    }
                ]
                return self._call_chat_completion(task_type, route, fallback)
            raise LLMError(
                code=f"http_{exc.code}",
                message=_sanitize_error_message(detail),
                provider=route.provider,
                task_type=task_type,
                retryable=exc.code >= 500 or exc.code == 429,
            ) from exc
        except (URLError, TimeoutError) as exc:
            raise LLMError(
                code="network_error",
                message=_sanitize_error_message(str(exc)),
                provider=route.provider,
                task_type=task_type,
                retryable=True,
            ) from exc
        except json.JSONDecodeError as exc:
            raise LLMError(
                code="invalid_body",
                message="Provider returned a non-JSON body",
                provider=route.provider,
                task_type=task_type,
            ) from exc

    def _bucket(self, task_type: str, route: TaskRoute) -> dict[str, float]:
        return self._metrics.setdefault(f"{task_type}|{route.provider}|{route.model}", _empty_bucket())

    def _record_success(
        self,
        task_type: str,
        route: TaskRoute,
        breaker_key: str,
        *,
        latency_ms: float,
        prompt_tokens: float,
        completion_tokens: float,
    ) -> None:
        with self._lock:
            self._failures[breaker_key] = 0
            bucket = self._bucket(task_type, route)
            bucket["calls"] += 1
            bucket["success"] += 1
            bucket["latency_ms_total"] += max(0.0, latency_ms)
            bucket["prompt_tokens_total"] += max(0.0, prompt_tokens)
            bucket["completion_tokens_total"] += max(0.0, completion_tokens)

    def _record_failure(self, task_type: str, route: TaskRoute, breaker_key: str, now_ts: float) -> None:
        with self._lock:
            bucket = self._bucket(task_type, route)
            bucket["calls"] += 1
            bucket["errors"] += 1
            fail_count = self._failures.get(breaker_key, 0) + 1
            self._failures[breaker_key] = fail_count
            if fail_count >= route.breaker_threshold:
                self._breaker_until[breaker_key] = now_ts + route.breaker_cooldown_s
                logger.warning(
                    "Circuit breaker opened for %s after %d failures", breaker_key, fail_count
                )

    def _track_retry(self, task_type: str, route: TaskRoute) -> None:
        with self._lock:
            self._bucket(task_type, route)["retries"] += 1


def _sanitize_error_message(message: str) -> str:
    text = (message or "").replace("\n", " ")
    text = text.replace("Bearer ", "Bearer [redacted]")
    return text[:300]
