"""
Скрипт: Инициализация базы данных NFT Staking Rewards Engine
Описание: Создание таблиц и проверка подключения
Автор: NFT Staking Rewards Team
"""

import sys
from pathlib import Path
sys.path.append(str(Path(__file__).parent.parent))

from config.settings import get_settings
from core.errors import PersistenceError
from db.database import DatabaseManager
from utils.logger import get_logger

logger = get_logger("DatabaseInit")


def init_database(settings=None) -> bool:
    """Инициализация базы данных"""
    settings = settings or get_settings()
    db_manager = DatabaseManager(settings.database_url, settings.debug_sql)
    try:
        logger.info("🗄️ Инициализация базы данных...")
        db_manager.initialize()

        if not db_manager.health_check():
            raise PersistenceError("Storage health check failed")

        logger.info("✅ База данных инициализирована")
        return True

    except Exception as e:
        logger.error(f"❌ Ошибка инициализации БД: {e}")
        return False
    finally:
        db_manager.close()


if __name__ == "__main__":
    success = init_database()
    sys.exit(0 if success else 1)
