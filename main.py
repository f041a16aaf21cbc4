#!/usr/bin/env python3
"""
NFT Staking Rewards Engine - Главный файл приложения
Описание: CLI: HTTP сервер, планировщик циклов, ручной цикл, инициализация БД, выпуск токенов
Версия: 1.0.0
Автор: NFT Staking Rewards Team
"""

import argparse
import json
import sys
from pathlib import Path

# Добавляем корневую директорию в путь
sys.path.append(str(Path(__file__).parent))

from config.constants import ENGINE_NAME, ENGINE_VERSION
from config.settings import get_settings
from utils.logger import configure_logging, get_logger

logger = get_logger("Main")


def _database(settings):
    from db.database import DatabaseManager
    return DatabaseManager(settings.database_url, settings.debug_sql).initialize()


def cmd_serve(settings, args) -> int:
    import uvicorn
    from api.server import create_app

    app = create_app(settings)
    logger.info(f"🌐 Serving on {args.host or settings.api_host}:{args.port or settings.api_port}")
    uvicorn.run(app, host=args.host or settings.api_host, port=args.port or settings.api_port,
                log_level=settings.log_level.lower())
    return 0


def cmd_schedule(settings, args) -> int:
    from api.server import build_manager
    from core.scheduler import CycleScheduler

    manager = build_manager(settings, _database(settings))
    scheduler = CycleScheduler(manager, interval_minutes=args.interval)
    try:
        scheduler.run_forever(run_immediately=not args.no_immediate)
    except KeyboardInterrupt:
        logger.info("🔄 Планировщик остановлен пользователем")
        scheduler.stop()
    return 0


def cmd_run_cycle(settings, args) -> int:
    from api.server import build_manager

    db_manager = _database(settings)
    try:
        report = build_manager(settings, db_manager).run_cycle()
    finally:
        db_manager.close()
    print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
    return 1 if report.errors else 0


def cmd_init_db(settings, args) -> int:
    from scripts.init_database import init_database
    return 0 if init_database(settings) else 1


def cmd_issue_token(settings, args) -> int:
    from api.security import sign_wallet_token
    from utils.validators import validate_wallet

    print(sign_wallet_token(validate_wallet(args.wallet), settings.session_secret))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=f"{ENGINE_NAME} v{ENGINE_VERSION}")
    parser.add_argument("--env-file", default=None, help="Путь к .env файлу")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve = subparsers.add_parser("serve", help="Запуск HTTP API (uvicorn)")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.set_defaults(func=cmd_serve)

    schedule = subparsers.add_parser("schedule", help="Периодический запуск циклов")
    schedule.add_argument("--interval", type=int, default=10, help="Интервал в минутах")
    schedule.add_argument("--no-immediate", action="store_true", help="Не запускать цикл сразу")
    schedule.set_defaults(func=cmd_schedule)

    run_cycle = subparsers.add_parser("run-cycle", help="Один цикл, отчёт в JSON")
    run_cycle.set_defaults(func=cmd_run_cycle)

    init_db = subparsers.add_parser("init-db", help="Создание таблиц")
    init_db.set_defaults(func=cmd_init_db)

    issue_token = subparsers.add_parser("issue-token", help="Wallet session токен")
    issue_token.add_argument("wallet")
    issue_token.set_defaults(func=cmd_issue_token)

    return parser


def main(argv=None) -> int:
    """Главная функция приложения"""
    args = build_parser().parse_args(argv)
    settings = get_settings(args.env_file)
    configure_logging(settings.log_level, settings.log_file)

    try:
        return args.func(settings, args)
    except KeyboardInterrupt:
        logger.info("🔄 Программа прервана пользователем")
        return 130
    except Exception as e:
        logger.error(f"❌ Критическая ошибка: {type(e).__name__}: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
