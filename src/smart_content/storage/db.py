"""
Инициализация базы данных и сессий SQLAlchemy.

Назначение:
- Создание engine
- Контекстный менеджер для сессий
- Единая точка доступа к БД для API и воркера
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from smart_content.common.config import get_settings
from smart_content.common.logging import get_project_logger

log = get_project_logger()

# =============================================================================
# ENGINE / SESSION FACTORY
# =============================================================================
_settings = get_settings()


def _engine_kwargs(dsn: str) -> dict:
    kwargs: dict = {"pool_pre_ping": True}
    if dsn.startswith("sqlite"):
        # воркер пишет из пула потоков
        kwargs["connect_args"] = {"check_same_thread": False}
    return kwargs


engine = create_engine(_settings.database_dsn, **_engine_kwargs(_settings.database_dsn))

SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
)


# =============================================================================
# CONTEXT MANAGER
# =============================================================================
@contextmanager
def db_session() -> Iterator[Session]:
    """
    Контекстный менеджер для работы с БД.

    Использование:
        with db_session() as session:
            session.add(...)
    """
    session: Session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """
    Автосоздание таблиц в dev (чтобы проект стартовал без ручных миграций).
    В prod схема ведётся через Alembic (DB_AUTO_CREATE=false).
    """
    if not _settings.db_auto_create:
        return
    from .models import Base

    Base.metadata.create_all(bind=engine)
    log.info("db_ready")


def dispose_db() -> None:
    engine.dispose()
