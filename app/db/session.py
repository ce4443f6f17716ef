"""
資料庫 Session 與連線池設定
==========================

連線池參數說明（僅 PostgreSQL）：
- pool_size: 常駐連線數（Celery worker 每個 process 一個 engine）
- max_overflow: 超額連線數
- pool_timeout: 等待連線的最大秒數
- pool_recycle: 連線回收週期（避免 PostgreSQL idle connection 被斷）
- pool_pre_ping: 使用前檢測連線是否存活

DATABASE_URL 指向 sqlite 時（測試）改用 StaticPool，讓同一個 in-memory
資料庫可在 FastAPI threadpool 中共用。
"""

import logging
import time
from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from app.config import settings

logger = logging.getLogger("storefront.db")

# ---------------------------------------------------------------------------
# 連線池調參
# ---------------------------------------------------------------------------
POOL_SIZE = int(getattr(settings, "DB_POOL_SIZE", 5))
MAX_OVERFLOW = int(getattr(settings, "DB_MAX_OVERFLOW", 10))
POOL_TIMEOUT = int(getattr(settings, "DB_POOL_TIMEOUT", 30))
POOL_RECYCLE = int(getattr(settings, "DB_POOL_RECYCLE", 1800))  # 30 分鐘

# Slow query 門檻（毫秒）
SLOW_QUERY_THRESHOLD_MS = settings.SLOW_QUERY_THRESHOLD_MS


def build_engine(url: str) -> Engine:
    """Create an engine with pool settings appropriate for the backend."""
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            echo=settings.DB_ECHO,
        )
    return create_engine(
        url,
        pool_pre_ping=True,
        pool_size=POOL_SIZE,
        max_overflow=MAX_OVERFLOW,
        pool_timeout=POOL_TIMEOUT,
        pool_recycle=POOL_RECYCLE,
        echo=settings.DB_ECHO,
    )


engine = build_engine(settings.database_url)


# ---------------------------------------------------------------------------
# Slow Query 監控
# ---------------------------------------------------------------------------
@event.listens_for(Engine, "before_cursor_execute")
def _before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """記錄查詢開始時間"""
    conn.info.setdefault("query_start_time", []).append(time.perf_counter())


@event.listens_for(Engine, "after_cursor_execute")
def _after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
    """檢測慢查詢並記錄"""
    starts = conn.info.get("query_start_time")
    if not starts:
        return
    total_ms = (time.perf_counter() - starts.pop()) * 1000

    if total_ms >= SLOW_QUERY_THRESHOLD_MS:
        # 截斷過長的 SQL 避免日誌爆量
        stmt_preview = statement[:500] + "..." if len(statement) > 500 else statement
        logger.warning(
            "Slow query detected (%.2f ms): %s",
            total_ms,
            stmt_preview,
        )


SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
