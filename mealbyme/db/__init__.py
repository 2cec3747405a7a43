from .database import Base, JSONType, get_db, get_engine, get_sessionmaker
from .upsert import upsert

__all__ = ["Base", "JSONType", "get_db", "get_engine", "get_sessionmaker", "upsert"]
