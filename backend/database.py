from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base

from config import settings

# unified nine-column layout
Base = declarative_base()
# older deployments: spot_id / entry_time / exit_time layout
LegacyBase = declarative_base()


def make_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    return create_engine(url, connect_args=connect_args)


engine = make_engine(settings.DATABASE_URL)
SessionLocal = sessionmaker(bind=engine)

if settings.LEGACY_DATABASE_URL:
    legacy_engine = make_engine(settings.LEGACY_DATABASE_URL)
else:
    legacy_engine = engine
LegacySessionLocal = sessionmaker(bind=legacy_engine)


def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)
