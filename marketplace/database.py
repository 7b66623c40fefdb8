from sqlmodel import SQLModel, create_engine, Session
from marketplace.config import settings


def build_engine(url: str):
    connect_args = {}
    if url.startswith("sqlite"):
        # sessions are handed to the notification worker thread
        connect_args["check_same_thread"] = False

    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,      # checks dead connections
        pool_recycle=1800,       # refresh every 30 min
        connect_args=connect_args,
    )


engine = build_engine(settings.database_url)


def create_db_and_tables(bind=None):
    from marketplace import models  # noqa: F401  registers every table
    SQLModel.metadata.create_all(bind or engine)


def get_session():
    with Session(engine) as session:
        yield session
