from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from openai import APIError, APITimeoutError, AsyncOpenAI, RateLimitError

logger = logging.getLogger(__name__)


FALLBACK_ANSWER = (
    "Сейчас не получается подготовить подробный ответ. "
    "Коротко: закупки по 44-ФЗ начинаются с описания объекта закупки и расчета НМЦК, "
    "затем формируются извещение и проект контракта. "
    "Попробуйте задать вопрос еще раз через пару минут."
)


class OpenAIServiceError(RuntimeError):
    pass


class OpenAIService:
    def __init__(self, api_key: str, model: str, client: Any | None = None) -> None:
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = model

    async def _responses_create_with_retry(self, **kwargs: Any) -> Any:
        delay = 1.0
        last_error: Exception | None = None

        for attempt in range(5):
            try:
                return await self.client.responses.create(**kwargs)
            except (RateLimitError, APITimeoutError) as exc:
                last_error = exc
                logger.warning(
                    "OpenAI transient error (%s), retry %s/5",
                    exc.__class__.__name__,
                    attempt + 1,
                )
                if attempt == 4:
                    break
                await asyncio.sleep(delay)
                delay *= 2
            except APIError as exc:
                last_error = exc
                retriable = getattr(exc, "status_code", 500) >= 500
                if not retriable or attempt == 4:
                    break
                logger.warning("OpenAI APIError retry %s/5: %s", attempt + 1, exc)
                await asyncio.sleep(delay)
                delay *= 2

        raise OpenAIServiceError(f"OpenAI request failed after retries: {last_error}")

    @staticmethod
    def _extract_text(response: Any) -> str:
        output_text = getattr(response, "output_text", None)
        if isinstance(output_text, str) and output_text.strip():
            return output_text.strip()

        parts: list[str] = []
        output = getattr(response, "output", None)
        if output:
            for item in output:
                for content in getattr(item, "content", []) or []:
                    text = getattr(content, "text", None)
                    if isinstance(text, str) and text.strip():
                        parts.append(text.strip())
                        continue

                    if isinstance(content, dict):
                        maybe_text = content.get("text")
                        if isinstance(maybe_text, str) and maybe_text.strip():
                            parts.append(maybe_text.strip())

        return "\n".join(parts)

    async def answer_question(
        self,
        question: str,
        item_name: str | None = None,
        characteristics: dict[str, Any] | None = None,
    ) -> str:
        system_prompt = (
            "Ты консультант по государственным закупкам по 44-ФЗ. "
            "Отвечай на русском языке, коротко и по делу: 3-6 предложений. "
            "Если вопрос касается текущей закупки, опирайся на переданные характеристики. "
            "Не выдумывай номера статей и сроки, если не уверен."
        )

        user_prompt = {
            "question": question,
            "procurement_item": item_name or "",
            "characteristics": characteristics or {},
            "language": "ru",
        }

        response = await self._responses_create_with_retry(
            model=self.model,
            input=[
                {
                    "role": "system",
                    "content": [{"type": "input_text", "text": system_prompt}],
                },
                {
                    "role": "user",
                    "content": [{"type": "input_text", "text": json.dumps(user_prompt, ensure_ascii=False)}],
                },
            ],
            temperature=0.3,
        )

        answer = self._extract_text(response)
        if not answer:
            raise OpenAIServiceError("Model returned an empty answer")
        return answer

    async def answer_or_fallback(
        self,
        question: str,
        item_name: str | None = None,
        characteristics: dict[str, Any] | None = None,
    ) -> str:
        try:
            return await self.answer_question(question, item_name=item_name, characteristics=characteristics)
        except OpenAIServiceError as exc:
            logger.error("Consultation answer failed, using fallback: %s", exc)
            return FALLBACK_ANSWER
