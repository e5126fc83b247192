# pingmon/init_db.py
from sqlalchemy.engine import Engine
from sqlmodel import SQLModel

from pingmon.models.PingResult import PingResult  # noqa: F401  registers the table

def init_db(engine: Engine):
    SQLModel.metadata.create_all(engine)

if __name__ == "__main__":
    from pingmon.config import get_settings
    from pingmon.db import create_db_engine

    init_db(create_db_engine(get_settings().DATABASE_PATH))
