from __future__ import annotations

import json
import logging

from .constants import FREE_QUESTION_LIMIT, SESSION_COMPLETED, STEP_DISPLAY, TOTAL_STEPS
from .database import StoreError
from .dialogue import ConversationEngine
from .models import (
    Characteristics,
    ConversationState,
    GateDecision,
    IntakeReply,
    ProcurementBundle,
    Session,
    UsageIdentity,
    UsageRecord,
)
from .openai_service import OpenAIService
from .reporting import ReportBuilder
from .stores import SessionStore, SubscriptionStore, UsageRecordStore
from .usage import UsageGate, days_until_expiry, is_effectively_active, is_expiring_soon

logger = logging.getLogger(__name__)


NO_SESSION_TEXT = "Активной закупки нет. Напишите /new, чтобы начать подбор характеристик."
CONFLICT_TEXT = "Предыдущий ответ еще обрабатывается. Подождите секунду и отправьте сообщение снова."
RESTART_HINT = "Начните новую закупку командой /new."
COMPLETION_ATTEMPTS = 3


class IntakeService:
    """Runs intake answers through the engine and the stores, and gates /ask.

    Order per answer: pure engine transition on the stored state, then an
    optimistic write of the new cursor, then the transcript. The last step skips
    the cursor write: ``complete`` moves the cursor, closes the session and
    attaches the documents in one transaction, retried with the bundle already
    in hand. Intake answers are free; only consultation questions count
    against the free-question ceiling.
    """

    def __init__(
        self,
        sessions: SessionStore,
        usage: UsageRecordStore,
        subscriptions: SubscriptionStore,
        engine: ConversationEngine,
        gate: UsageGate,
        reporter: ReportBuilder | None = None,
        consultant: OpenAIService | None = None,
    ) -> None:
        self.sessions = sessions
        self.usage = usage
        self.subscriptions = subscriptions
        self.engine = engine
        self.gate = gate
        self.reporter = reporter
        self.consultant = consultant

    @staticmethod
    def load_characteristics(session: Session) -> Characteristics:
        try:
            data = json.loads(session.characteristics_json or "{}")
            if isinstance(data, dict):
                return data
        except json.JSONDecodeError:
            logger.warning("Session %s has unreadable characteristics JSON", session.id)
        return {}

    def load_state(self, session: Session) -> ConversationState:
        answers = {"item_name": session.item_name} if session.item_name else {}
        return ConversationState(
            step=session.step,
            characteristics=self.load_characteristics(session),
            answers=answers,
            done=session.status == SESSION_COMPLETED,
        )

    def check_gate(self, user_id: int) -> GateDecision:
        identity = UsageIdentity(user_id=user_id)
        snapshot = self.subscriptions.get_active(user_id)
        return self.gate.check(identity, snapshot, self.usage.count_free(identity))

    def paywall_text(self, decision: GateDecision) -> str:
        lines = [
            f"Бесплатные вопросы закончились ({decision.free_remaining} из {FREE_QUESTION_LIMIT}).",
            "С подпиской вопросы консультанту (/ask) не ограничены.",
        ]
        plans = self.subscriptions.list_plans()
        if plans:
            plan = plans[0]
            lines.append(f"Оформить «{plan.name}» за {plan.price_rub}₽/мес: /plans")
        return "\n".join(lines)

    def _record_question(
        self,
        user_id: int,
        text: str,
        decision: GateDecision,
        answer: str | None = None,
    ) -> int:
        record = UsageRecord(
            identity=UsageIdentity(user_id=user_id),
            question_text=text,
            is_free_question=not decision.subscribed,
            answer_text=answer,
        )
        return self.usage.insert_question(record)

    @staticmethod
    def _last_free_notice(decision: GateDecision) -> str | None:
        if decision.subscribed or decision.free_remaining != 1:
            return None
        return "Это был последний бесплатный вопрос. Дальше понадобится подписка: /plans"

    def start_session(self, user_id: int) -> IntakeReply:
        active = self.sessions.get_active_session(user_id)
        if active is not None:
            state = self.load_state(active)
            return IntakeReply(
                messages=[
                    "У вас уже есть активная закупка "
                    f"({self.engine.progress_label(state)}). Продолжайте отвечать или используйте /cancel."
                ],
                session_id=active.id,
            )

        session = self.sessions.create_session(user_id)
        greeting = self.engine.initial_message()
        self.sessions.append_turn(session.id, role="assistant", content=greeting)
        logger.info("Started procurement session %s for user %s", session.id, user_id)
        return IntakeReply(messages=[greeting], session_id=session.id)

    def handle_answer(self, user_id: int, text: str) -> IntakeReply:
        session = self.sessions.get_active_session(user_id)
        if session is None:
            return IntakeReply(messages=[NO_SESSION_TEXT])

        state = self.load_state(session)
        expected_step = state.step
        result = self.engine.advance(state, text, expected_step)

        if result.done and result.bundle is None:
            # Engine refused the transition; the stored cursor is unusable.
            self.sessions.cancel(session.id)
            return IntakeReply(messages=[result.reply, RESTART_HINT], done=True, session_id=session.id)

        if result.bundle is not None:
            stored = self._complete(session.id, state, expected_step, result.bundle)
        else:
            stored = self.sessions.set_characteristics(
                session.id,
                state.characteristics,
                step=state.step,
                expected_step=expected_step,
                item_name=state.answers.get("item_name") if expected_step == 0 else None,
            )
        if not stored:
            logger.warning("Lost advance race on session %s at step %s", session.id, expected_step)
            return IntakeReply(messages=[CONFLICT_TEXT], session_id=session.id)

        self.sessions.append_turn(session.id, role="user", content=text)
        self.sessions.append_turn(session.id, role="assistant", content=result.reply)

        messages = [result.reply]
        if result.bundle is not None:
            self._export(session.id, state.characteristics)
            messages.append("Итоговый отчет доступен по команде /result.")

        return IntakeReply(messages=messages, done=result.done, session_id=session.id)

    def _complete(
        self,
        session_id: int,
        state: ConversationState,
        expected_step: int,
        bundle: ProcurementBundle,
    ) -> bool:
        for attempt in range(1, COMPLETION_ATTEMPTS + 1):
            try:
                return self.sessions.complete(
                    session_id,
                    state.characteristics,
                    self.engine.selected_catalog_code(),
                    bundle.documents,
                    step=state.step,
                    expected_step=expected_step,
                )
            except StoreError as exc:
                if attempt == COMPLETION_ATTEMPTS:
                    raise
                logger.warning(
                    "Completion of session %s failed, retry %s/%s: %s",
                    session_id,
                    attempt,
                    COMPLETION_ATTEMPTS,
                    exc,
                )
        return False

    def _export(self, session_id: int, characteristics: Characteristics) -> None:
        if self.reporter is None:
            return

        session = self.sessions.get_session(session_id)
        if session is None:
            return

        try:
            artifacts = self.reporter.export_report(
                session=session,
                characteristics=characteristics,
                documents=self.sessions.list_documents(session_id),
            )
        except OSError as exc:
            logger.error("Failed to export session %s: %s", session_id, exc)
            return

        self.sessions.set_export_path(session_id, artifacts.export_path)

    async def ask(self, user_id: int, question: str) -> IntakeReply:
        question = question.strip()
        if not question:
            return IntakeReply(messages=["Напишите вопрос после команды, например: /ask как рассчитать НМЦК?"])

        decision = self.check_gate(user_id)
        if not decision.allowed:
            return IntakeReply(messages=[self.paywall_text(decision)], blocked=True)

        question_id = self._record_question(user_id, question, decision)

        session = self.sessions.get_active_session(user_id) or self.sessions.get_latest_session(user_id)
        item_name = session.item_name if session else None
        characteristics = self.load_characteristics(session) if session else {}

        if self.consultant is None:
            answer = "Консультант сейчас недоступен. Попробуйте позже."
        else:
            answer = await self.consultant.answer_or_fallback(
                question,
                item_name=item_name,
                characteristics=characteristics,
            )
        self.usage.set_answer(question_id, answer)

        messages = [answer]
        notice = self._last_free_notice(decision)
        if notice:
            messages.append(notice)
        return IntakeReply(messages=messages)

    def cancel(self, user_id: int) -> bool:
        session = self.sessions.get_active_session(user_id)
        if session is None:
            return False
        return self.sessions.cancel(session.id)

    def status_text(self, user_id: int) -> str:
        decision = self.check_gate(user_id)
        if decision.subscribed:
            usage_line = "Подписка активна: вопросы без ограничений."
        else:
            usage_line = f"Бесплатных вопросов осталось: {decision.free_remaining} из {FREE_QUESTION_LIMIT}."

        session = self.sessions.get_active_session(user_id)
        if session is None:
            latest = self.sessions.get_latest_session(user_id)
            if latest and latest.status == SESSION_COMPLETED:
                return "Активной закупки нет. Последняя уже завершена, посмотрите /result.\n" + usage_line
            return NO_SESSION_TEXT + "\n" + usage_line

        state = self.load_state(session)
        answered = [STEP_DISPLAY[i] for i in range(min(state.step, TOTAL_STEPS))]
        lines = [
            f"Прогресс: {self.engine.progress_label(state)}.",
            f"Уже ответили: {', '.join(answered) if answered else 'пока ничего'}",
        ]
        if state.step < TOTAL_STEPS:
            lines.append(f"Сейчас: {STEP_DISPLAY[state.step]}")
        lines.append(usage_line)
        return "\n".join(lines)

    def result_text(self, user_id: int) -> list[str]:
        if self.sessions.get_active_session(user_id) is not None:
            return ["Закупка еще не завершена. Ответьте на оставшиеся вопросы, /status покажет прогресс."]

        latest = self.sessions.get_latest_session(user_id)
        if latest is None or latest.status != SESSION_COMPLETED:
            return ["Готового пакета документов пока нет. Начните закупку через /new."]

        documents = self.sessions.list_documents(latest.id)
        characteristics = self.load_characteristics(latest)
        if self.reporter is None:
            return [json.dumps([doc.content() for doc in documents], ensure_ascii=False)]

        messages = [self.reporter.build_markdown(latest, characteristics, documents)]
        if latest.export_path:
            messages.append(f"JSON-экспорт: {latest.export_path}")
        return messages

    def subscription_text(self, user_id: int) -> str:
        snapshot = self.subscriptions.get_active(user_id)
        if not is_effectively_active(snapshot):
            return "Подписки нет. Тарифы: /plans"

        days_left = days_until_expiry(snapshot)
        end_date = snapshot.current_period_end.strftime("%d.%m.%Y")
        if is_expiring_soon(snapshot):
            status_line = f"Истекает через {days_left} дн."
        else:
            status_line = "Подписка активна"

        if snapshot.auto_renew:
            renew_line = f"до {end_date}, продлевается автоматически. Отключить: /autorenew off"
        else:
            renew_line = f"Автопродление выключено. Подписка истечет {end_date}. Включить: /autorenew on"
        return f"{status_line}\n{renew_line}"

    def plans_text(self) -> str:
        plans = self.subscriptions.list_plans()
        if not plans:
            return "Сейчас нет доступных тарифов."

        lines = ["Тарифы:"]
        for plan in plans:
            limit = "без ограничений" if plan.question_limit is None else f"до {plan.question_limit} вопросов"
            lines.append(f"• {plan.name}: {plan.price_rub}₽/{'мес' if plan.billing_period == 'month' else plan.billing_period}, {limit}")
        return "\n".join(lines)
