"""
Database engine initialisation and table metadata.

Documents are stored as JSON rows keyed by (collection, doc_id). Array
fields are kept one element per row in ``document_items`` so that appending
to an array is a single INSERT.
"""

import sys

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Index,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    text,
)
from sqlalchemy.pool import StaticPool

from bloodbank.config import get_env

metadata = MetaData()

documents = Table(
    "documents",
    metadata,
    Column("collection", String(512), primary_key=True),
    Column("doc_id", String(255), primary_key=True),
    Column("data", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("updated_at", DateTime(timezone=True), nullable=False),
)

document_items = Table(
    "document_items",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("collection", String(512), nullable=False),
    Column("doc_id", String(255), nullable=False),
    Column("field", String(255), nullable=False),
    Column("value", JSON, nullable=False),
    Index("ix_document_items_doc", "collection", "doc_id"),
)

identity_users = Table(
    "identity_users",
    metadata,
    Column("uid", String(128), primary_key=True),
    Column("display_name", String(255)),
    Column("claims", JSON, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
)


IN_MEMORY_URIS = ("sqlite://", "sqlite:///:memory:")


def make_engine(db_uri: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if db_uri in IN_MEMORY_URIS:
        return create_engine(
            db_uri,
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(db_uri, echo=False, future=True)


def create_schema(engine) -> None:
    metadata.create_all(engine)


def init_engine(db_uri: str = None):
    """Create a SQLAlchemy engine, verify the connection and create tables.

    In-memory SQLite is refused: it shares one connection across threads and
    is only usable through make_engine in tests.
    """
    db_uri = db_uri or get_env("DB_URI")
    if db_uri in IN_MEMORY_URIS:
        print("ERROR: in-memory SQLite cannot back a server; use a file or server database", file=sys.stderr)
        sys.exit(1)
    engine = make_engine(db_uri)
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        create_schema(engine)
    except Exception as e:
        print("ERROR: could not connect to DB:", e, file=sys.stderr)
        sys.exit(1)
    print("[init] Connected to DB.")
    return engine
