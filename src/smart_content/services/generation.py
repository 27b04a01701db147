"""
Генерация контента через LLM-провайдера.

Назначение:
- собрать system/user prompt по типу контента
- вызвать провайдера и проверить, что результат не пустой
"""

from __future__ import annotations

from smart_content.common.errors import ErrCode, ProviderError
from smart_content.common.logging import get_project_logger
from smart_content.domain.enums import ContentType
from smart_content.domain.prompts import system_prompt_for, user_prompt_for
from smart_content.llm.base import LLMProvider
from smart_content.llm.factory import get_llm_provider

log = get_project_logger()


def generate_content(
    prompt: str,
    content_type: ContentType,
    *,
    provider: LLMProvider | None = None,
) -> str:
    """
    Сгенерировать текст. Любая ошибка провайдера -> ProviderError.
    """
    provider = provider or get_llm_provider()
    result = provider.complete_text(
        system=system_prompt_for(content_type),
        user=user_prompt_for(content_type, prompt),
    )
    text = (result.text or "").strip()
    if not text:
        raise ProviderError(
            ErrCode.LLM_EMPTY_RESULT,
            "LLM вернул пустой ответ",
            {"model_id": result.model_id},
        )
    log.info(
        "content_generated",
        extra={
            "payload": {
                "content_type": content_type.value,
                "model_id": result.model_id,
                "chars": len(text),
            }
        },
    )
    return text
