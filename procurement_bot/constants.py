from __future__ import annotations

FREE_QUESTION_LIMIT = 2

SESSION_ACTIVE = "active"
SESSION_COMPLETED = "completed"
SESSION_CANCELLED = "cancelled"

SUBSCRIPTION_STATUSES = ["active", "cancelled", "expired", "trial"]

# Step index -> answer field captured at that step.
STEP_FIELDS = [
    "item_name",
    "purpose",
    "user_count",
    "reliability",
    "preference",
]

TOTAL_STEPS = len(STEP_FIELDS)

STEP_DISPLAY = [
    "Наименование закупки",
    "Назначение",
    "Количество пользователей",
    "Надежность",
    "Итоговые пожелания",
]

PREFERENCES = ["optimal", "maximum", "minimum", "custom"]

SERVER_RACK = "rack-mounted"
SERVER_STANDALONE = "standalone"

SERVER_TYPE_DISPLAY = {
    SERVER_RACK: "Стоечный",
    SERVER_STANDALONE: "Отдельностоящий",
}

CHARACTERISTIC_DEFAULTS = {
    "max_processors": 2,
    "installed_processors": 2,
    "server_type": SERVER_RACK,
    "memory": 32,
}

CHARACTERISTIC_DISPLAY = {
    "max_processors": "Максимальное количество процессоров",
    "installed_processors": "Количество установленных процессоров",
    "server_type": "Тип сервера",
    "memory": "Оперативная память",
    "cores": "Количество ядер процессора",
}

DOCUMENT_TYPES = [
    "technical_task",
    "notice",
    "contract",
    "nmck",
    "suppliers",
]

DOCUMENT_TITLES = {
    "technical_task": "Техническое задание",
    "notice": "Извещение о закупке",
    "contract": "Проект контракта",
    "nmck": "НМЦК",
    "suppliers": "Поставщики",
}

DOCUMENT_STATUS_DISPLAY = {
    "ready": "готово",
    "calculated": "рассчитан",
    "ready to bid": "готовы к участию",
}

BASE_PRICE = 150000
PRICE_BASELINE_UNITS = 64
SUPPLIER_COUNT_RANGE = (10, 19)

INITIAL_MESSAGE = "Привет! Что вам нужно купить?"
RESET_MESSAGE = "Произошла ошибка. Давайте начнем сначала."
