from __future__ import annotations

import time
from dataclasses import dataclass

import requests

from smart_content.common.config import get_settings
from smart_content.common.errors import ErrCode, ProviderError
from smart_content.common.logging import get_llm_logger

from .base import LLMProvider, LLMResult

log = get_llm_logger()


@dataclass
class OpenAICompatConfig:
    """Настройки OpenAI-compatible API (по умолчанию OpenRouter)."""

    api_base: str
    api_key: str
    model: str = "openai/gpt-3.5-turbo"
    temperature: float = 0.7
    max_tokens: int = 1500
    timeout_s: int = 60
    http_referer: str | None = None
    app_title: str | None = None


class OpenAICompatProvider(LLMProvider):
    """Провайдер LLM через OpenAI-compatible endpoint /chat/completions."""

    def __init__(self, cfg: OpenAICompatConfig | None = None) -> None:
        if cfg is None:
            s = get_settings()
            if not s.openai_api_base:
                raise ProviderError(ErrCode.LLM_PROVIDER_ERROR, "OPENAI_API_BASE не задан")
            if not s.openai_api_key:
                raise ProviderError(ErrCode.LLM_PROVIDER_ERROR, "OPENAI_API_KEY не задан")
            cfg = OpenAICompatConfig(
                api_base=s.openai_api_base,
                api_key=s.openai_api_key,
                model=s.llm_model_id,
                temperature=s.llm_temperature,
                max_tokens=s.llm_max_tokens,
                timeout_s=s.llm_request_timeout_sec,
                http_referer=s.llm_http_referer,
                app_title=s.llm_app_title,
            )
        self.cfg = cfg

    def _headers(self) -> dict[str, str]:
        headers = {
            "Authorization": f"Bearer {self.cfg.api_key}",
            "Content-Type": "application/json",
        }
        # OpenRouter использует их для атрибуции приложения
        if self.cfg.http_referer:
            headers["HTTP-Referer"] = self.cfg.http_referer
        if self.cfg.app_title:
            headers["X-Title"] = self.cfg.app_title
        return headers

    def complete_text(self, *, system: str, user: str) -> LLMResult:
        payload = {
            "model": self.cfg.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": self.cfg.max_tokens,
            "temperature": self.cfg.temperature,
        }

        url = self.cfg.api_base.rstrip("/") + "/chat/completions"
        started = time.perf_counter()
        try:
            resp = requests.post(url, headers=self._headers(), json=payload, timeout=self.cfg.timeout_s)
        except requests.RequestException as e:
            log.error(
                "llm_http_error",
                extra={"provider": "openai_compat", "payload": {"err": str(e)}},
            )
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "Ошибка HTTP при вызове LLM",
                {"err": str(e)},
            ) from e

        if resp.status_code >= 400:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "LLM вернул ошибку",
                {"status": resp.status_code, "text_head": resp.text[:500]},
            )

        try:
            data = resp.json()
        except ValueError as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "LLM вернул невалидный JSON",
                {"err": str(e), "text_head": resp.text[:500]},
            ) from e

        try:
            text = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            raise ProviderError(
                ErrCode.LLM_PROVIDER_ERROR,
                "Не удалось извлечь текст из ответа LLM",
                {"err": str(e), "data_head": str(data)[:500]},
            ) from e

        latency_ms = int((time.perf_counter() - started) * 1000)
        log.info(
            "llm_completed",
            extra={
                "provider": "openai_compat",
                "payload": {"model": self.cfg.model, "latency_ms": latency_ms},
            },
        )
        return LLMResult(
            text=text or "",
            model_id=data.get("model") or self.cfg.model,
            usage=data.get("usage"),
            latency_ms=latency_ms,
        )
