"""
Relational document store.

Collections live in a single ``tracker_records`` table: one row per
document, ordered by ``position``, with the document itself in a JSON
column. A write replaces the whole collection inside one transaction.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import JSON, Column, Integer, String, create_engine, delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from backend.core.errors import StorageError
from backend.storage.json_store import COLLECTIONS, check_collection

logger = logging.getLogger(__name__)

Base = declarative_base()


class TrackerRecord(Base):
    __tablename__ = "tracker_records"

    id = Column(Integer, primary_key=True, autoincrement=True)
    collection = Column(String(32), nullable=False, index=True)
    position = Column(Integer, nullable=False)
    body = Column(JSON, nullable=False)


def make_engine(url: str):
    kwargs: Dict[str, Any] = {"future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.rstrip("/") == "sqlite:":
            # every session must see the same in-memory database
            kwargs["poolclass"] = StaticPool
    else:
        kwargs["pool_pre_ping"] = True
    return create_engine(url, **kwargs)


class SqlStore:
    def __init__(self, url: str):
        self.engine = make_engine(url)
        self.SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=self.engine, future=True)

    def initialize(self, seeds: Optional[Dict[str, List[Dict[str, Any]]]] = None) -> None:
        """Create the table and seed collections that hold no rows yet."""
        seeds = seeds or {}
        logger.info("Initializing SQL storage on %s", self.engine.url.render_as_string(hide_password=True))
        try:
            Base.metadata.create_all(self.engine)
        except SQLAlchemyError as e:
            raise StorageError(f"Could not create tables: {e}") from e
        for name in COLLECTIONS:
            if seeds.get(name) and not self.read(name):
                logger.info("Seeding %s", name)
                self.write(name, seeds[name])

    def read(self, collection: str) -> List[Dict[str, Any]]:
        check_collection(collection)
        stmt = (
            select(TrackerRecord.body)
            .where(TrackerRecord.collection == collection)
            .order_by(TrackerRecord.position)
        )
        db = self.SessionLocal()
        try:
            return [dict(body) for body in db.execute(stmt).scalars()]
        except SQLAlchemyError as e:
            raise StorageError(f"Could not read {collection}: {e}") from e
        finally:
            db.close()

    def write(self, collection: str, records: Sequence[Dict[str, Any]]) -> None:
        check_collection(collection)
        db = self.SessionLocal()
        try:
            db.execute(delete(TrackerRecord).where(TrackerRecord.collection == collection))
            db.add_all(
                TrackerRecord(collection=collection, position=i, body=dict(rec))
                for i, rec in enumerate(records)
            )
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Could not write {collection}: {e}") from e
        finally:
            db.close()

    def dispose(self) -> None:
        self.engine.dispose()
