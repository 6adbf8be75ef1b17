from __future__ import annotations

import json
import urllib.error
import urllib.parse
import urllib.request
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

try:
    from constants import (
        DEFAULT_FALLBACK_MODEL_NAME,
        DEFAULT_LMSTUDIO_BASE_URL,
        DEFAULT_MAX_TOKENS,
        DEFAULT_MODEL_NAME,
        DEFAULT_OLLAMA_BASE_URL,
        DEFAULT_OPENAI_BASE_URL,
        DEFAULT_OPENROUTER_BASE_URL,
        DEFAULT_OPENROUTER_MODEL,
        DEFAULT_PROVIDER,
        DEFAULT_TEMPERATURE,
        HTTP_TIMEOUT_SEC,
        LOCAL_HOSTS,
    )
    from logger_config import logger
    from models import ModelInfo
except ImportError:
    from .constants import (
        DEFAULT_FALLBACK_MODEL_NAME,
        DEFAULT_LMSTUDIO_BASE_URL,
        DEFAULT_MAX_TOKENS,
        DEFAULT_MODEL_NAME,
        DEFAULT_OLLAMA_BASE_URL,
        DEFAULT_OPENAI_BASE_URL,
        DEFAULT_OPENROUTER_BASE_URL,
        DEFAULT_OPENROUTER_MODEL,
        DEFAULT_PROVIDER,
        DEFAULT_TEMPERATURE,
        HTTP_TIMEOUT_SEC,
        LOCAL_HOSTS,
    )
    from .logger_config import logger
    from .models import ModelInfo

DEFAULT_BASE_URLS = {
    "openai": DEFAULT_OPENAI_BASE_URL,
    "lmstudio": DEFAULT_LMSTUDIO_BASE_URL,
    "ollama": DEFAULT_OLLAMA_BASE_URL,
    "openrouter": DEFAULT_OPENROUTER_BASE_URL,
}

ResolvedModel = Tuple[str, str, str, str, float, Optional[str]]


def build_url(base_url: str, path: str) -> str:
    if base_url.endswith("/"):
        base = base_url[:-1]
    else:
        base = base_url
    if not path.startswith("/"):
        path = "/" + path
    return base + path


def is_local_url(url: str) -> bool:
    try:
        host = urllib.parse.urlparse(url).hostname
    except ValueError:
        return False
    if not host:
        return False
    return host in LOCAL_HOSTS or host.startswith("127.")


def read_json_response(resp: Any) -> Dict[str, Any]:
    raw = resp.read().decode("utf-8")
    return json.loads(raw)


def post_json(
    url: str,
    payload: Dict[str, Any],
    timeout: float,
    headers: Optional[Dict[str, str]] = None,
) -> Dict[str, Any]:
    data = json.dumps(payload).encode("utf-8")
    req_headers = {"Content-Type": "application/json"}
    req_headers.update(headers or {})
    req = urllib.request.Request(url, data=data, headers=req_headers, method="POST")
    try:
        if is_local_url(url):
            opener = urllib.request.build_opener(urllib.request.ProxyHandler({}))
            with opener.open(req, timeout=timeout) as resp:
                return read_json_response(resp)
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            return read_json_response(resp)
    except urllib.error.HTTPError as exc:
        body = exc.read().decode("utf-8", errors="ignore")
        logger.error("LLM HTTP error: %s %s", exc.code, body)
        raise HTTPException(status_code=502, detail=f"LLM HTTP error: {exc.code} {body}") from exc
    except urllib.error.URLError as exc:
        logger.error("LLM connection error: %s", exc)
        raise HTTPException(status_code=502, detail=f"LLM connection error: {exc}") from exc
    except TimeoutError as exc:
        logger.error("LLM request timed out after %.0fs", timeout)
        raise HTTPException(status_code=502, detail="LLM request timed out") from exc
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=502, detail=f"LLM returned invalid JSON: {exc}") from exc


def chat_content(response: Dict[str, Any], label: str) -> str:
    try:
        return response["choices"][0]["message"]["content"] or ""
    except (KeyError, IndexError, TypeError) as exc:
        logger.error("%s response missing content: %s", label, response)
        raise HTTPException(status_code=502, detail=f"{label} response missing content") from exc


def call_openai(
    model_name: str,
    base_url: str,
    temperature: float,
    messages: List[Dict[str, str]],
    api_key: str,
    timeout: float = HTTP_TIMEOUT_SEC,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> str:
    url = build_url(base_url, "/chat/completions")
    payload = {
        "model": model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "response_format": {"type": "json_object"},
    }
    response = post_json(url, payload, timeout, headers={"Authorization": f"Bearer {api_key}"})
    return chat_content(response, "OpenAI")


def call_lmstudio(
    model_name: str,
    base_url: str,
    temperature: float,
    messages: List[Dict[str, str]],
    timeout: float = HTTP_TIMEOUT_SEC,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> str:
    url = build_url(base_url, "/chat/completions")
    payload = {
        "model": model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }
    response = post_json(url, payload, timeout)
    return chat_content(response, "LM Studio")


def call_ollama(
    model_name: str,
    base_url: str,
    temperature: float,
    messages: List[Dict[str, str]],
    timeout: float = HTTP_TIMEOUT_SEC,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> str:
    url = build_url(base_url, "/api/chat")
    payload = {
        "model": model_name,
        "messages": messages,
        "options": {"temperature": temperature, "num_predict": max_tokens},
        "format": "json",
        "stream": False,
    }
    response = post_json(url, payload, timeout)
    try:
        return response["message"]["content"]
    except (KeyError, TypeError) as exc:
        raise HTTPException(status_code=502, detail="Ollama response missing content") from exc


def call_openrouter(
    model_name: str,
    base_url: str,
    temperature: float,
    messages: List[Dict[str, str]],
    api_key: str,
    timeout: float = HTTP_TIMEOUT_SEC,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> str:
    url = build_url(base_url, "/chat/completions")
    logger.info("OpenRouter request: url=%s model=%s", url, model_name)
    payload = {
        "model": model_name,
        "messages": messages,
        "temperature": temperature,
        "max_tokens": max_tokens,
        "stream": False,
    }
    headers = {
        "Authorization": f"Bearer {api_key}",
        "X-Title": "Score Bridge",
    }
    response = post_json(url, payload, timeout, headers=headers)
    content = chat_content(response, "OpenRouter")
    logger.info("OpenRouter response received: %d chars", len(content))
    return content


def extract_json_block(text: str) -> Optional[str]:
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end <= start:
        return None
    candidate = text[start : end + 1]
    return candidate.strip()


def strip_code_fences(text: str) -> str:
    fence_start = text.find("```")
    if fence_start == -1:
        return text
    fence_end = text.rfind("```")
    if fence_end == fence_start:
        return text
    inner = text[fence_start + 3 : fence_end]
    if inner.lstrip().startswith("json"):
        inner = inner.lstrip()[4:]
    return inner.strip()


def extract_first_json_object(text: str) -> Optional[str]:
    start = None
    depth = 0
    in_str = False
    escape = False
    for idx, ch in enumerate(text):
        if start is None:
            if ch == "{":
                start = idx
                depth = 1
            continue
        if in_str:
            if escape:
                escape = False
            elif ch == "\\":
                escape = True
            elif ch == '"':
                in_str = False
            continue
        if ch == '"':
            in_str = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : idx + 1]
    return None


def parse_llm_json(content: str) -> Dict[str, Any]:
    sanitized = strip_code_fences(content).strip()
    try:
        parsed = json.loads(sanitized)
    except json.JSONDecodeError:
        parsed = None
        first_obj = extract_first_json_object(sanitized)
        if first_obj:
            try:
                parsed = json.loads(first_obj)
            except json.JSONDecodeError:
                parsed = None
        if parsed is None:
            extracted = extract_json_block(sanitized)
            if not extracted:
                raise ValueError("Invalid JSON from LLM")
            try:
                parsed = json.loads(extracted)
            except json.JSONDecodeError as exc:
                raise ValueError("Invalid JSON from LLM") from exc
    if not isinstance(parsed, dict):
        raise ValueError("LLM JSON is not an object")
    return parsed


def resolve_model(model_info: Optional[ModelInfo]) -> ResolvedModel:
    model_info = model_info or ModelInfo()
    provider = (model_info.provider or DEFAULT_PROVIDER).lower()
    model_name = model_info.model_name
    if not model_name:
        model_name = DEFAULT_OPENROUTER_MODEL if provider == "openrouter" else DEFAULT_MODEL_NAME
    fallback_model_name = model_info.fallback_model_name or DEFAULT_FALLBACK_MODEL_NAME
    temperature = model_info.temperature
    if temperature is None:
        temperature = DEFAULT_TEMPERATURE
    base_url = model_info.base_url or DEFAULT_BASE_URLS.get(provider, DEFAULT_LMSTUDIO_BASE_URL)
    return provider, model_name, fallback_model_name, base_url, float(temperature), model_info.api_key


def call_llm(
    provider: str,
    model_name: str,
    base_url: str,
    temperature: float,
    messages: List[Dict[str, str]],
    api_key: Optional[str] = None,
    timeout: float = HTTP_TIMEOUT_SEC,
    max_tokens: int = DEFAULT_MAX_TOKENS,
) -> str:
    logger.info(
        "call_llm: provider=%s model=%s base_url=%s has_api_key=%s timeout=%.0fs",
        provider, model_name, base_url, bool(api_key), timeout,
    )
    if provider in ("openai", "openrouter"):
        if not api_key:
            logger.error("%s requires an API key but none provided", provider)
            raise HTTPException(status_code=400, detail=f"{provider} requires an API key")
        if provider == "openrouter":
            return call_openrouter(model_name, base_url, temperature, messages, api_key, timeout, max_tokens)
        return call_openai(model_name, base_url, temperature, messages, api_key, timeout, max_tokens)
    if provider == "ollama":
        return call_ollama(model_name, base_url, temperature, messages, timeout, max_tokens)
    return call_lmstudio(model_name, base_url, temperature, messages, timeout, max_tokens)
