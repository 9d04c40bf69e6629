from typing import Callable, Optional
from sqlalchemy import desc
from sqlalchemy.orm import Session, sessionmaker
from dropshot.core.database import SessionLocal
from dropshot.core.exceptions import EntryNotFoundError
from dropshot.core.logger import logger
from dropshot.models.entry import Entry


class EntryStore:
    """Entry persistence.

    Counters are bumped with a single UPDATE statement and every other
    change to an existing entry goes through ``mutate``, which holds a row
    lock for the whole read-modify-write. SQLite has no row locks, so its
    engine takes the database write lock when each transaction begins
    (see ``lock_sqlite_on_begin``). Returned entries are detached
    copies; changing them has no effect until passed to ``update``.
    """

    def __init__(self, session_factory: sessionmaker = SessionLocal):
        self.session_factory = session_factory

    def get(self, name: str) -> Optional[Entry]:
        with self.session_factory() as db:
            return db.get(Entry, name)

    def list(self, owner_token: Optional[str] = None) -> list[Entry]:
        with self.session_factory() as db:
            query = db.query(Entry)
            if owner_token:
                query = query.filter(Entry.owner_token == owner_token)
            return query.order_by(desc(Entry.creation)).all()

    def update(self, entry: Entry) -> Entry:
        db: Session = self.session_factory()
        try:
            merged = db.merge(entry)
            db.commit()
            return merged
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def remove(self, name: str) -> bool:
        with self.session_factory() as db:
            deleted = db.query(Entry).filter(Entry.name == name).delete(synchronize_session=False)
            db.commit()
            return deleted > 0

    def clear(self, owner_token: Optional[str] = None) -> int:
        with self.session_factory() as db:
            query = db.query(Entry)
            if owner_token:
                query = query.filter(Entry.owner_token == owner_token)
            deleted = query.delete(synchronize_session=False)
            db.commit()
            return deleted

    def increment(self, name: str, column, condition=None) -> Optional[int]:
        """Atomically add one to ``column`` and return the stored value.

        With ``condition`` the row is only updated when it holds, otherwise
        None is returned.
        """
        with self.session_factory() as db:
            query = db.query(Entry).filter(Entry.name == name)
            if condition is not None:
                query = query.filter(condition)
            updated = query.update(
                {column: column + 1},
                synchronize_session=False
            )
            if not updated:
                db.rollback()
                if condition is not None and db.get(Entry, name) is not None:
                    return None
                raise EntryNotFoundError(name)
            value = db.query(column).filter(Entry.name == name).scalar()
            db.commit()
            return value

    def mutate(self, name: str, change: Callable[[Entry], None]) -> Entry:
        """Apply ``change`` to the stored entry under a row lock."""
        db: Session = self.session_factory()
        try:
            entry = db.query(Entry).filter(Entry.name == name).with_for_update().first()
            if entry is None:
                raise EntryNotFoundError(name)
            change(entry)
            db.commit()
            logger.debug("entry_mutated", name=name)
            return entry
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
