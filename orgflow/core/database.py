from sqlmodel import SQLModel, create_engine
from .config import get_settings


settings = get_settings()

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)


def create_db_and_tables(bind=None):
    SQLModel.metadata.create_all(bind or engine)
