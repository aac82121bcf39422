"""
db.py
=====
Database engine and session factory for the persistence mirror.
Nothing is created at import time: the host decides when and where.
"""

import os
from typing import Optional

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from . import config
from .models import Base


def make_engine(db_path: Optional[str] = None):
    """
    SQLite engine for `db_path` (default: CAREFLOW_DB).
    Creates the parent directory if it doesn't exist.
    """
    db_path = db_path or config.DB_PATH
    db_dir = os.path.dirname(db_path)
    if db_dir and not os.path.exists(db_dir):
        os.makedirs(db_dir, exist_ok=True)

    # For SQLite, we must disable thread check
    return create_engine(f"sqlite:///{db_path}", connect_args={"check_same_thread": False})


def make_session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


def init_db(engine, base=Base):
    """Creates tables if missing."""
    base.metadata.create_all(bind=engine)
