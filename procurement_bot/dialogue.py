from __future__ import annotations

import logging

from .catalog import CatalogError
from .constants import (
    CHARACTERISTIC_DEFAULTS,
    CHARACTERISTIC_DISPLAY,
    DOCUMENT_STATUS_DISPLAY,
    INITIAL_MESSAGE,
    RESET_MESSAGE,
    SERVER_TYPE_DISPLAY,
    STEP_FIELDS,
    TOTAL_STEPS,
)
from .documents import DocumentSynthesizer
from .inference import infer_for_step, parse_preference, preference_overrides
from .models import CatalogEntry, Characteristics, ConversationState, ProcurementBundle, StepResult

logger = logging.getLogger(__name__)


USER_COUNT_QUESTION = (
    "Следующий вопрос: сколько примерно пользователей будет работать с сервером одновременно?\n\n"
    "Варианты ответа:\n"
    "• До 10 человек\n"
    "• 10-20 человек\n"
    "• 20-50 человек\n"
    "• Больше 50 человек\n\n"
    "Или просто скажите: \"много\" / \"мало\""
)

RELIABILITY_QUESTION = (
    "И последний вопрос: нужна ли повышенная надежность или подойдет обычный?\n\n"
    "Варианты ответа:\n"
    "• Обычный (стандартная надежность)\n"
    "• Повышенная надежность\n"
    "• Максимальная надежность\n\n"
    "Или просто скажите: \"надежный\" / \"обычный\""
)

PREFERENCE_QUESTION = (
    "Отлично! Я подобрал основные характеристики. "
    "Хотите указать дополнительные требования или оставить как есть?\n\n"
    "Варианты ответа:\n"
    "• Оставить как есть (я выберу оптимальные характеристики)\n"
    "• Мощный, самый лучший (максимальные характеристики)\n"
    "• Экономный вариант (минимальные характеристики)\n"
    "• Указать конкретно (я покажу варианты)"
)


class ConversationEngine:
    """Scripted five-step intake dialogue.

    The engine keeps no per-session data: every call receives the session's
    ``ConversationState`` and mutates only that object, so one engine serves any
    number of sessions. Persisting the state after each call is up to the caller.
    """

    def __init__(self, catalog: list[CatalogEntry], synthesizer: DocumentSynthesizer) -> None:
        if not catalog:
            raise CatalogError("Conversation engine needs at least one catalog entry")
        self.catalog = catalog
        self.synthesizer = synthesizer

    def initial_message(self) -> str:
        return INITIAL_MESSAGE

    def selected_catalog_code(self) -> str:
        return self.catalog[0].code

    @staticmethod
    def new_state() -> ConversationState:
        return ConversationState()

    def advance(self, state: ConversationState, raw_answer: str, step: int) -> StepResult:
        if state.done or step != state.step or not 0 <= step < TOTAL_STEPS:
            logger.warning(
                "Out-of-sequence answer: step=%s cursor=%s done=%s",
                step,
                state.step,
                state.done,
            )
            return StepResult(reply=RESET_MESSAGE, done=True)

        answer = raw_answer.strip()
        state.answers[STEP_FIELDS[step]] = answer

        if step == TOTAL_STEPS - 1:
            preference = parse_preference(answer)
            state.answers["preference"] = preference
            state.characteristics.update(preference_overrides(preference))
            state.step += 1
            state.done = True

            bundle = self.synthesizer.generate(state.characteristics)
            return StepResult(
                reply=self.completion_reply(state.characteristics, bundle),
                done=True,
                bundle=bundle,
            )

        state.characteristics.update(infer_for_step(step, answer))
        state.step += 1
        return StepResult(reply=self._step_reply(step), done=False)

    @staticmethod
    def _step_reply(step: int) -> str:
        if step == 0:
            return "Отлично! Расскажите подробнее - для чего нужен сервер?"

        if step == 1:
            return (
                "Понял! Значит вам подойдет сервер с максимальным количеством процессоров больше двух.\n\n"
                + USER_COUNT_QUESTION
            )

        if step == 2:
            return (
                "Отлично! Значит вам нужно количество установленных процессоров больше двух "
                "для стабильной работы.\n\n" + RELIABILITY_QUESTION
            )

        return PREFERENCE_QUESTION

    @staticmethod
    def resolved_characteristics(characteristics: Characteristics) -> Characteristics:
        resolved = dict(CHARACTERISTIC_DEFAULTS)
        resolved.update({key: value for key, value in characteristics.items() if value})
        return resolved

    def completion_reply(self, characteristics: Characteristics, bundle: ProcurementBundle) -> str:
        chars = self.resolved_characteristics(characteristics)
        server_type = str(chars["server_type"])

        lines = [
            "✨ Готово! Создал полный пакет документов для вашей закупки:",
            "",
            f"📋 Техническое задание - {DOCUMENT_STATUS_DISPLAY['ready']}",
            f"📄 Извещение о закупке - {DOCUMENT_STATUS_DISPLAY['ready']}",
            f"📝 Проект контракта - {DOCUMENT_STATUS_DISPLAY['ready']}",
            f"💰 НМЦК: {bundle.price_display} - {DOCUMENT_STATUS_DISPLAY['calculated']}",
            f"🏢 Найдено {bundle.supplier_count} поставщиков - {DOCUMENT_STATUS_DISPLAY['ready to bid']}",
            "",
            "Все документы соответствуют требованиям 44-ФЗ. Можете сразу публиковать закупку! 🚀",
            "",
            "Подобранные характеристики:",
            f"• {CHARACTERISTIC_DISPLAY['max_processors']}: ≥ {chars['max_processors']}",
            f"• {CHARACTERISTIC_DISPLAY['installed_processors']}: ≥ {chars['installed_processors']}",
            f"• {CHARACTERISTIC_DISPLAY['server_type']}: {SERVER_TYPE_DISPLAY.get(server_type, server_type)}",
            f"• {CHARACTERISTIC_DISPLAY['memory']}: ≥ {chars['memory']} ГБ",
        ]
        if "cores" in characteristics:
            lines.append(f"• {CHARACTERISTIC_DISPLAY['cores']}: ≥ {characteristics['cores']}")
        return "\n".join(lines)

    @staticmethod
    def progress_label(state: ConversationState) -> str:
        if state.done:
            return "Опрос завершен"
        return f"Шаг {state.step + 1} из {TOTAL_STEPS}"
