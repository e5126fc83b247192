from pathlib import Path

from sqlalchemy.engine import Engine
from sqlmodel import create_engine

def create_db_engine(database_path: str) -> Engine:
    """SQLite engine shared by every session; connections may hop threads."""
    Path(database_path).parent.mkdir(parents=True, exist_ok=True)
    return create_engine(f"sqlite:///{database_path}", connect_args={"check_same_thread": False})
