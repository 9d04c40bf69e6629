from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool
from dropshot.config import settings
from urllib.parse import quote_plus, unquote, urlparse, urlunparse


def encode_database_url(url: str) -> str:
    if not url:
        return url

    parsed = urlparse(url)
    if not parsed.password:
        return url

    encoded_password = quote_plus(unquote(parsed.password), safe='')
    netloc = f"{parsed.username or ''}:{encoded_password}@{parsed.hostname or ''}"
    if parsed.port:
        netloc += f":{parsed.port}"

    return urlunparse((
        parsed.scheme,
        netloc,
        parsed.path or '',
        parsed.params or '',
        parsed.query or '',
        parsed.fragment or ''
    ))


def lock_sqlite_on_begin(db_engine: Engine) -> None:
    """Take the SQLite write lock when a transaction starts.

    pysqlite defers BEGIN until the first write, so SELECT ... FOR UPDATE
    (ignored by SQLite) would not serialize read-modify-write cycles.
    """

    @event.listens_for(db_engine, "connect")
    def disable_pysqlite_begin(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(db_engine, "begin")
    def begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")


def create_database_engine(url: str = None) -> Engine:
    db_url = encode_database_url(url or settings.database_url)

    if db_url.startswith("sqlite"):
        if ":memory:" in db_url or db_url in ("sqlite://", "sqlite:///"):
            return create_engine(
                db_url,
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool
            )
        db_engine = create_engine(
            db_url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30}
        )
        lock_sqlite_on_begin(db_engine)
        return db_engine

    return create_engine(
        db_url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        connect_args={"connect_timeout": 10},
        echo=False
    )


engine = create_database_engine()

SessionLocal = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
Base = declarative_base()
