from sqlalchemy import create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from src.config import config

Base = declarative_base()

if config.DATABASE_URL.startswith("sqlite"):
    # Local development and tests, pool sizing options don't apply to SQLite
    engine = create_engine(config.DATABASE_URL, connect_args={"check_same_thread": False, "timeout": 30})
else:
    engine = create_engine(config.DATABASE_URL, pool_size=20, max_overflow=5, pool_timeout=10, pool_recycle=1800)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
