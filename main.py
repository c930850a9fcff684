from __future__ import annotations

import logging
import random
import sys

from telegram import BotCommand, BotCommandScopeAllPrivateChats, BotCommandScopeDefault
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, MessageHandler, filters

from procurement_bot.catalog import CatalogError, JsonCatalog
from procurement_bot.config import CATALOG_PATH, DB_PATH, EXPORTS_DIR, ConfigError, ensure_data_dirs, load_config
from procurement_bot.database import Database
from procurement_bot.dialogue import ConversationEngine
from procurement_bot.documents import DocumentSynthesizer
from procurement_bot.handlers import (
    ask_command,
    autorenew_command,
    cancel_command,
    grant_command,
    help_command,
    new_command,
    plans_command,
    result_command,
    start_command,
    start_intake_callback,
    status_command,
    subscription_command,
    text_message_handler,
)
from procurement_bot.intake import IntakeService
from procurement_bot.openai_service import OpenAIService
from procurement_bot.reporting import ReportBuilder
from procurement_bot.usage import UsageGate

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


async def _post_init_set_commands(app: Application) -> None:
    commands = [
        BotCommand("start", "Запуск бота"),
        BotCommand("new", "Новая закупка"),
        BotCommand("status", "Текущий прогресс"),
        BotCommand("result", "Пакет документов"),
        BotCommand("cancel", "Отменить закупку"),
        BotCommand("ask", "Вопрос консультанту"),
        BotCommand("plans", "Тарифы"),
        BotCommand("subscription", "Статус подписки"),
        BotCommand("help", "Справка по командам"),
    ]

    scopes = [BotCommandScopeDefault(), BotCommandScopeAllPrivateChats()]
    language_codes: list[str | None] = [None, "ru", "en"]

    for scope in scopes:
        for language_code in language_codes:
            await app.bot.delete_my_commands(
                scope=scope,
                language_code=language_code,
            )
            await app.bot.set_my_commands(
                commands,
                scope=scope,
                language_code=language_code,
            )

    logger.info("Telegram command menu updated for default/private scopes")


def build_application() -> Application:
    ensure_data_dirs()
    config = load_config()
    catalog = JsonCatalog(CATALOG_PATH).load()

    db = Database(DB_PATH)
    db.init()

    rng = random.Random(config.supplier_seed) if config.supplier_seed is not None else None
    synthesizer = DocumentSynthesizer(currency=config.currency, rng=rng)
    engine = ConversationEngine(catalog=catalog, synthesizer=synthesizer)
    intake = IntakeService(
        sessions=db,
        usage=db,
        subscriptions=db,
        engine=engine,
        gate=UsageGate(),
        reporter=ReportBuilder(exports_dir=EXPORTS_DIR, currency=config.currency),
        consultant=OpenAIService(api_key=config.openai_api_key, model=config.openai_model),
    )

    app = Application.builder().token(config.telegram_bot_token).post_init(_post_init_set_commands).build()

    app.bot_data["intake"] = intake
    app.bot_data["admin_user_ids"] = config.admin_user_ids

    app.add_handler(CommandHandler("start", start_command))
    app.add_handler(CommandHandler("help", help_command))
    app.add_handler(CommandHandler("new", new_command))
    app.add_handler(CommandHandler("cancel", cancel_command))
    app.add_handler(CommandHandler("status", status_command))
    app.add_handler(CommandHandler("result", result_command))
    app.add_handler(CommandHandler("ask", ask_command))
    app.add_handler(CommandHandler("plans", plans_command))
    app.add_handler(CommandHandler("subscription", subscription_command))
    app.add_handler(CommandHandler("autorenew", autorenew_command))
    app.add_handler(CommandHandler("grant", grant_command))

    app.add_handler(CallbackQueryHandler(start_intake_callback, pattern=r"^start_intake$"))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, text_message_handler))

    return app


def main() -> None:
    configure_logging()

    try:
        app = build_application()
    except (ConfigError, CatalogError) as exc:
        logging.error("Startup failed: %s", exc)
        sys.exit(1)

    app.run_polling(drop_pending_updates=True)


if __name__ == "__main__":
    main()
