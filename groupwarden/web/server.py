# Copyright (c) 2025 sprowii
import asyncio
import secrets
from typing import Any, Dict

from flask import Flask, abort, jsonify, request
from telegram import Bot, Update

from groupwarden import config
from groupwarden.bot.dispatcher import UpdateDispatcher
from groupwarden.logging_config import configure_logging, log
from groupwarden.storage.kv import get_store

SECRET_HEADER = "X-Telegram-Bot-Api-Secret-Token"

flask_app = Flask(__name__)


def _secret_matches(provided: str) -> bool:
    # Без настроенного секрета вебхук не принимает ничего
    if not config.WEBHOOK_SECRET or not provided:
        return False
    return secrets.compare_digest(provided.encode(), config.WEBHOOK_SECRET.encode())


async def _process(payload: Dict[str, Any]) -> None:
    async with Bot(config.TG_TOKEN) as bot:
        update = Update.de_json(payload, bot)
        if update is None:
            return
        await UpdateDispatcher(bot, get_store()).dispatch(update)


async def _register_webhook(url: str) -> bool:
    async with Bot(config.TG_TOKEN) as bot:
        return await bot.set_webhook(url, secret_token=config.WEBHOOK_SECRET, allowed_updates=Update.ALL_TYPES)


@flask_app.route("/")
def home():
    return "groupwarden is running"


@flask_app.route("/webhook", methods=["POST"])
def webhook():
    if not _secret_matches(request.headers.get(SECRET_HEADER, "")):
        log.warning("Отклонён вебхук с неверным секретом")
        abort(401)

    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        abort(400)

    try:
        asyncio.run(_process(payload))
    except Exception:
        log.exception(f"Ошибка обработки обновления {payload.get('update_id')}")
        abort(500)
    return jsonify({"ok": True})


@flask_app.route("/setup")
def setup_webhook():
    base_url = config.PUBLIC_URL or request.host_url.rstrip("/")
    url = f"{base_url}/webhook"
    try:
        ok = asyncio.run(_register_webhook(url))
    except Exception as exc:
        log.error(f"Не удалось установить вебхук: {exc}", exc_info=True)
        return jsonify({"ok": False, "error": str(exc)}), 500
    log.info(f"Вебхук установлен: {url}")
    return jsonify({"ok": bool(ok), "url": url})


def main() -> None:
    configure_logging()
    flask_app.run(host=config.FLASK_HOST, port=config.FLASK_PORT)


if __name__ == "__main__":
    main()
