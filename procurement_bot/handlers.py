from __future__ import annotations

import logging
from typing import Any

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.ext import ContextTypes

from .database import StoreError
from .intake import IntakeService
from .models import IntakeReply

logger = logging.getLogger(__name__)


COMMANDS_HINT = "Используйте команды: /new, /status, /result, /ask, /subscription, /help"


def _service(context: ContextTypes.DEFAULT_TYPE, key: str) -> Any:
    return context.application.bot_data[key]


def _chunk_text(text: str, limit: int = 3800) -> list[str]:
    if len(text) <= limit:
        return [text]

    chunks: list[str] = []
    cursor = 0
    while cursor < len(text):
        next_cursor = min(cursor + limit, len(text))
        if next_cursor < len(text):
            split = text.rfind("\n", cursor, next_cursor)
            if split > cursor:
                next_cursor = split
        chunks.append(text[cursor:next_cursor].strip())
        cursor = next_cursor
    return [c for c in chunks if c]


async def _send_messages(update: Update, messages: list[str]) -> None:
    if update.effective_message is None:
        return
    for message in messages:
        for chunk in _chunk_text(message):
            await update.effective_message.reply_text(chunk)


async def _send_reply(update: Update, reply: IntakeReply) -> None:
    await _send_messages(update, reply.messages)


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    active_session = intake.sessions.get_active_session(update.effective_user.id)

    welcome_lines = [
        "Привет! Я помогаю подготовить закупку по 44-ФЗ.",
        "Задам несколько простых вопросов и подберу технические характеристики.",
        "В финале вы получите:",
        "1) техническое задание, извещение и проект контракта,",
        "2) расчет НМЦК,",
        "3) количество поставщиков, готовых к участию.",
        "",
        "Подбор характеристик бесплатный. Первые 2 вопроса консультанту (/ask) бесплатно, дальше по подписке.",
    ]

    if active_session:
        welcome_lines.append("\nУ вас уже есть активная закупка. Используйте /status для продолжения или /cancel для отмены.")

    keyboard = InlineKeyboardMarkup(
        [[InlineKeyboardButton("Начать закупку", callback_data="start_intake")]]
    )

    await update.effective_message.reply_text("\n".join(welcome_lines), reply_markup=keyboard)


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return
    await update.effective_message.reply_text(
        "Команды:\n"
        "/new - начать новую закупку\n"
        "/status - текущий шаг и оставшиеся бесплатные вопросы\n"
        "/result - пакет документов последней завершенной закупки\n"
        "/cancel - отменить текущую закупку\n"
        "/ask <вопрос> - вопрос консультанту по закупкам\n"
        "/plans - тарифы\n"
        "/subscription - статус подписки\n"
        "/autorenew on|off - автопродление подписки\n"
        "/help - подсказка по командам"
    )


async def new_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    reply = intake.start_session(update.effective_user.id)
    await _send_reply(update, reply)


async def start_intake_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.callback_query is None:
        return

    await update.callback_query.answer()
    await new_command(update, context)


async def cancel_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    if intake.cancel(update.effective_user.id):
        await update.effective_message.reply_text("Текущая закупка отменена. Напишите /new, чтобы начать заново.")
    else:
        await update.effective_message.reply_text("Активная закупка не найдена.")


async def status_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    await update.effective_message.reply_text(intake.status_text(update.effective_user.id))


async def result_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    await _send_messages(update, intake.result_text(update.effective_user.id))


async def ask_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    question = " ".join(context.args or [])

    try:
        reply = await intake.ask(update.effective_user.id, question)
    except Exception as exc:  # pragma: no cover - defensive branch
        logger.exception("Unexpected error in ask handler: %s", exc)
        await update.effective_message.reply_text("Не удалось обработать вопрос. Попробуйте еще раз.")
        return

    await _send_reply(update, reply)


async def plans_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None:
        return

    intake: IntakeService = _service(context, "intake")
    await update.effective_message.reply_text(intake.plans_text())


async def subscription_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    intake: IntakeService = _service(context, "intake")
    await update.effective_message.reply_text(intake.subscription_text(update.effective_user.id))


async def autorenew_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    args = [a.lower() for a in (context.args or [])]
    if args not in (["on"], ["off"]):
        await update.effective_message.reply_text("Использование: /autorenew on или /autorenew off")
        return

    intake: IntakeService = _service(context, "intake")
    enabled = args == ["on"]
    if not intake.subscriptions.set_auto_renew(update.effective_user.id, enabled):
        await update.effective_message.reply_text("Активная подписка не найдена. Тарифы: /plans")
        return

    await update.effective_message.reply_text(
        "Автопродление включено." if enabled else "Автопродление выключено. Подписка будет действовать до конца периода."
    )


async def grant_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    admin_user_ids: frozenset[int] = _service(context, "admin_user_ids")
    if update.effective_user.id not in admin_user_ids:
        await update.effective_message.reply_text("Команда доступна только администраторам.")
        return

    args = context.args or []
    try:
        target_user_id = int(args[0])
        days = int(args[1]) if len(args) > 1 else 30
        if days <= 0:
            raise ValueError
    except (IndexError, ValueError):
        await update.effective_message.reply_text("Использование: /grant <telegram_user_id> [дней]")
        return

    intake: IntakeService = _service(context, "intake")
    plans = intake.subscriptions.list_plans()
    if not plans:
        await update.effective_message.reply_text("Нет активных тарифов.")
        return

    try:
        snapshot = intake.subscriptions.grant(target_user_id, plans[0].id, days)
    except StoreError as exc:
        logger.error("Grant failed for %s: %s", target_user_id, exc)
        await update.effective_message.reply_text(f"Не удалось выдать подписку: {exc}")
        return

    logger.info("Admin %s granted %s days to %s", update.effective_user.id, days, target_user_id)
    await update.effective_message.reply_text(
        f"Подписка выдана пользователю {target_user_id} до {snapshot.current_period_end.strftime('%d.%m.%Y')}."
    )


async def text_message_handler(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    if update.effective_message is None or update.effective_user is None:
        return

    text = (update.effective_message.text or "").strip()
    if not text:
        return

    intake: IntakeService = _service(context, "intake")

    try:
        reply = intake.handle_answer(update.effective_user.id, text)
    except Exception as exc:  # pragma: no cover - defensive branch
        logger.exception("Unexpected error in message handler: %s", exc)
        await update.effective_message.reply_text(
            "Произошла ошибка при обработке ответа. Попробуйте еще раз."
        )
        return

    await _send_reply(update, reply)
