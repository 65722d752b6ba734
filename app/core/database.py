from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session, declarative_base
from sqlalchemy.engine.url import make_url
from typing import Generator, Optional
import os
from dotenv import load_dotenv

def _default_env_file() -> str:
    # 本地开发优先使用 SQLite 配置，避免依赖外部数据库
    for candidate in (".env.sqlite", ".env.sqlite.example", ".env"):
        if os.path.exists(candidate):
            return candidate
    return ".env"


ENV_FILE = os.getenv("ENV_FILE") or _default_env_file()
load_dotenv(ENV_FILE)

DATABASE_URL = os.getenv("DATABASE_URL")
if not DATABASE_URL:
    raise RuntimeError("DATABASE_URL 未配置，请在环境变量或 .env 中设置")


def _unicode_lower(value: Optional[str]) -> Optional[str]:
    return value.lower() if isinstance(value, str) else value


def install_sqlite_functions(target: Engine) -> None:
    """SQLite 内置 lower() 只处理 ASCII；替换为 Python 实现，帖子检索（ilike）才能忽略非 ASCII 大小写"""

    @event.listens_for(target, "connect")
    def _register(dbapi_connection, connection_record):
        dbapi_connection.create_function("lower", 1, _unicode_lower, deterministic=True)


_url = make_url(DATABASE_URL)
_is_sqlite = _url.drivername.startswith("sqlite")
_engine_kwargs: dict = {"echo": False, "pool_pre_ping": True}

if _is_sqlite:
    _engine_kwargs["connect_args"] = {"check_same_thread": False}
else:
    # 帖子聚合整行存 JSON，MySQL 需 utf8mb4 以容纳表情等字符
    _engine_kwargs.update(
        {
            "pool_size": 10,
            "max_overflow": 20,
            "connect_args": {"charset": "utf8mb4", "connect_timeout": 5},
        }
    )

engine = create_engine(DATABASE_URL, **_engine_kwargs)
if _is_sqlite:
    install_sqlite_functions(engine)

SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    """数据库会话依赖注入（每个请求一个会话，帖子写操作各自提交）"""
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
