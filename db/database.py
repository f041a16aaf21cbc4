"""
NFT Staking Rewards Engine - Database Connection
Модуль для подключения к базе данных и управления сессиями.

Автор: NFT Staking Rewards Team
Версия: 1.0.0
"""

from contextlib import contextmanager
from typing import Generator, Optional

from sqlalchemy import create_engine, Engine, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.pool import StaticPool

from core.errors import PersistenceError
from utils.logger import get_logger
from db.models import Base

logger = get_logger(__name__)


class DatabaseManager:
    """
    Менеджер базы данных движка наград.

    Функциональность:
    - Создание движка (StaticPool для SQLite, пул соединений для PostgreSQL)
    - Автоматическое создание таблиц
    - Сессии через контекстный менеджер с commit/rollback
    """

    def __init__(self, database_url: str, debug_sql: bool = False):
        """
        Инициализация DatabaseManager.

        Args:
            database_url: URL базы данных
            debug_sql: Логировать SQL запросы
        """
        self.database_url = database_url
        self.debug_sql = debug_sql

        self.engine: Optional[Engine] = None
        self.session_factory: Optional[sessionmaker] = None
        self.is_initialized = False

        logger.info(f"📊 DatabaseManager создан для: {self._mask_db_url()}")

    def _mask_db_url(self) -> str:
        """Маскирование URL БД для логов."""
        if not self.database_url:
            return "None"

        # Скрываем пароль в URL
        if '@' in self.database_url:
            parts = self.database_url.split('@')
            if len(parts) >= 2:
                return f"{parts[0].split('://')[0]}://***@{parts[1]}"

        return self.database_url[:50] + "..." if len(self.database_url) > 50 else self.database_url

    def initialize(self) -> "DatabaseManager":
        """
        Создание движка, фабрики сессий и таблиц.

        Returns:
            DatabaseManager: self, для цепочек вызовов
        """
        logger.info("🔧 Инициализация подключения к БД...")

        if self.database_url.startswith('sqlite'):
            # Одно соединение на процесс: :memory: живёт, пока жив движок
            self.engine = create_engine(
                self.database_url,
                poolclass=StaticPool,
                connect_args={
                    'check_same_thread': False,
                    'timeout': 30
                },
                echo=self.debug_sql
            )
        else:
            self.engine = create_engine(
                self.database_url,
                pool_size=10,
                max_overflow=20,
                pool_pre_ping=True,
                pool_recycle=3600,
                echo=self.debug_sql
            )

        self.session_factory = sessionmaker(
            bind=self.engine,
            autocommit=False,
            autoflush=False,
            expire_on_commit=False
        )

        self.create_tables()
        self.is_initialized = True
        logger.info("✅ Подключение к БД инициализировано")
        return self

    def create_tables(self) -> None:
        """Создание всех таблиц в БД."""
        try:
            Base.metadata.create_all(bind=self.engine)
            logger.info("✅ Таблицы БД созданы или уже существуют")
        except SQLAlchemyError as e:
            logger.error(f"❌ Ошибка создания таблиц: {e}")
            raise

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """
        Получение сессии БД с контекстным менеджером.

        Yields:
            Session: Сессия SQLAlchemy (commit при успехе, rollback при ошибке)
        """
        if not self.is_initialized or not self.session_factory:
            raise RuntimeError("БД не инициализирована")

        session = self.session_factory()
        try:
            yield session
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error(f"❌ Ошибка хранилища: {type(e).__name__}: {e}")
            raise PersistenceError(f"Storage operation failed: {type(e).__name__}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def health_check(self) -> bool:
        """Проверка доступности хранилища"""
        if not self.is_initialized:
            return False
        try:
            with self.engine.connect() as conn:
                conn.execute(text('SELECT 1'))
            return True
        except SQLAlchemyError as e:
            logger.error(f"❌ Хранилище недоступно: {e}")
            return False

    def close(self) -> None:
        """Закрытие соединений."""
        if self.engine:
            self.engine.dispose()
            self.engine = None
        self.session_factory = None
        self.is_initialized = False
        logger.info("🔒 Соединения с БД закрыты")
