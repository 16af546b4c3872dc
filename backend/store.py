# backend/store.py
import json
import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import func

from db import Base
from entities import (
    Analysis, ApprovedText, Document, FinalDocument, FlowState, Proposal, Session, Vote,
)
from errors import NotFoundError
from models import ROW_BY_COLLECTION

logger = logging.getLogger(__name__)


class Kind(str, Enum):
    SESSION = "sessions"
    DOCUMENT = "documents"
    ANALYSIS = "analyses"
    PROPOSAL = "proposals"
    VOTE = "votes"
    APPROVED_TEXT = "approved_texts"
    FINAL_DOCUMENT = "final_documents"
    FLOW_STATE = "flow_states"


ENTITY_BY_KIND = {
    Kind.SESSION: Session,
    Kind.DOCUMENT: Document,
    Kind.ANALYSIS: Analysis,
    Kind.PROPOSAL: Proposal,
    Kind.VOTE: Vote,
    Kind.APPROVED_TEXT: ApprovedText,
    Kind.FINAL_DOCUMENT: FinalDocument,
    Kind.FLOW_STATE: FlowState,
}

# natural key per kind; kinds not listed are keyed by id
KEY_FIELDS = {
    Kind.ANALYSIS: ("session_id", "question_type"),
    Kind.VOTE: ("session_id", "proposal_id", "variant_id", "respondent_id"),
    Kind.APPROVED_TEXT: ("session_id", "question_type"),
    Kind.FINAL_DOCUMENT: ("session_id",),
    Kind.FLOW_STATE: ("session_id",),
}


def _part(value: Any) -> str:
    return value.value if isinstance(value, Enum) else str(value)


def make_key(kind: Kind, **parts) -> str:
    fields = KEY_FIELDS.get(kind, ("id",))
    missing = [f for f in fields if f not in parts]
    if missing:
        raise ValueError(f"{kind.value} key needs {', '.join(missing)}")
    return ":".join(_part(parts[f]) for f in fields)


def key_of(kind: Kind, entity) -> str:
    fields = KEY_FIELDS.get(kind, ("id",))
    return make_key(kind, **{f: getattr(entity, f) for f in fields})


# ---------- repositories ----------
class Repository(ABC):
    """Persistence medium: one ordered, keyed collection of dict records per name."""

    @abstractmethod
    def get(self, collection: str, record_id: str) -> Optional[dict]: ...

    @abstractmethod
    def find(self, collection: str, record_key: str) -> Optional[dict]: ...

    @abstractmethod
    def list(self, collection: str, session_id: Optional[str] = None) -> List[dict]: ...

    @abstractmethod
    def put(self, collection: str, record_key: str, record: dict) -> None:
        """Store `record` under `record_key`, dropping any record with that key or id."""

    @abstractmethod
    def delete(self, collection: str, record_id: str) -> bool: ...

    @abstractmethod
    def delete_session(self, collection: str, session_id: str) -> int: ...


class InMemoryRepository(Repository):
    """Process-local medium; records are kept as JSON text like a real store would."""

    def __init__(self):
        self._data: Dict[str, Dict[str, str]] = {}

    def _col(self, collection: str) -> Dict[str, str]:
        return self._data.setdefault(collection, {})

    def get(self, collection, record_id):
        for raw in self._col(collection).values():
            rec = json.loads(raw)
            if rec.get("id") == record_id:
                return rec
        return None

    def find(self, collection, record_key):
        raw = self._col(collection).get(record_key)
        return json.loads(raw) if raw is not None else None

    def list(self, collection, session_id=None):
        out = [json.loads(raw) for raw in self._col(collection).values()]
        if session_id is not None:
            out = [r for r in out if r.get("session_id") == session_id]
        return out

    def put(self, collection, record_key, record):
        col = self._col(collection)
        stale = {k for k, raw in col.items() if k == record_key or json.loads(raw).get("id") == record.get("id")}
        if not stale:
            col[record_key] = json.dumps(record)
            return
        # replace in place so insertion order survives updates
        rebuilt, placed = {}, False
        for k, raw in col.items():
            if k in stale:
                if not placed:
                    rebuilt[record_key] = json.dumps(record)
                    placed = True
                continue
            rebuilt[k] = raw
        self._data[collection] = rebuilt

    def delete(self, collection, record_id):
        col = self._col(collection)
        for k, raw in list(col.items()):
            if json.loads(raw).get("id") == record_id:
                del col[k]
                return True
        return False

    def delete_session(self, collection, session_id):
        col = self._col(collection)
        doomed = [k for k, raw in col.items() if json.loads(raw).get("session_id") == session_id]
        for k in doomed:
            del col[k]
        return len(doomed)


class SqlRepository(Repository):
    """SQLAlchemy-backed medium, one table per collection (see models.py)."""

    def __init__(self, session_factory, engine=None):
        self.session_factory = session_factory
        if engine is not None:
            Base.metadata.create_all(bind=engine)

    def _row(self, collection):
        try:
            return ROW_BY_COLLECTION[collection]
        except KeyError:
            raise ValueError(f"Unknown collection {collection!r}")

    def get(self, collection, record_id):
        Row = self._row(collection)
        with self.session_factory() as db:
            r = db.get(Row, record_id)
            return json.loads(r.payload) if r else None

    def find(self, collection, record_key):
        Row = self._row(collection)
        with self.session_factory() as db:
            r = db.query(Row).filter(Row.record_key == record_key).first()
            return json.loads(r.payload) if r else None

    def list(self, collection, session_id=None):
        Row = self._row(collection)
        with self.session_factory() as db:
            q = db.query(Row)
            if session_id is not None:
                q = q.filter(Row.session_id == session_id)
            return [json.loads(r.payload) for r in q.order_by(Row.seq).all()]

    def put(self, collection, record_key, record):
        Row = self._row(collection)
        with self.session_factory() as db:
            stale = db.query(Row).filter((Row.record_key == record_key) | (Row.id == record["id"]))
            seq = stale.with_entities(func.min(Row.seq)).scalar()
            stale.delete(synchronize_session=False)
            if seq is None:
                seq = (db.query(func.max(Row.seq)).scalar() or 0) + 1
            db.add(Row(id=record["id"], session_id=record.get("session_id") or record["id"],
                       record_key=record_key, seq=seq, payload=json.dumps(record)))
            db.commit()

    def delete(self, collection, record_id):
        Row = self._row(collection)
        with self.session_factory() as db:
            n = db.query(Row).filter(Row.id == record_id).delete(synchronize_session=False)
            db.commit()
            return n > 0

    def delete_session(self, collection, session_id):
        Row = self._row(collection)
        with self.session_factory() as db:
            n = db.query(Row).filter(Row.session_id == session_id).delete(synchronize_session=False)
            db.commit()
            return n


# ---------- entity store ----------
class EntityStore:
    def __init__(self, repository: Repository):
        self.repo = repository

    @staticmethod
    def _load(kind: Kind, rec: Optional[dict]):
        return ENTITY_BY_KIND[kind].from_dict(rec) if rec is not None else None

    def create(self, kind: Kind, entity):
        """Add a new record; refuses to overwrite an existing key (use `upsert`)."""
        key = key_of(kind, entity)
        if self.repo.find(kind.value, key) is not None:
            raise ValueError(f"{kind.value} record {key!r} already exists")
        self.repo.put(kind.value, key, entity.to_dict())
        logger.debug("created %s %s", kind.value, key)
        return entity

    def upsert(self, kind: Kind, entity):
        """Replace whatever is stored under the entity's natural key."""
        key = key_of(kind, entity)
        self.repo.put(kind.value, key, entity.to_dict())
        logger.debug("upserted %s %s", kind.value, key)
        return entity

    def update(self, kind: Kind, entity):
        if self.repo.get(kind.value, entity.id) is None:
            raise NotFoundError(f"{kind.value} record {entity.id} not found")
        return self.upsert(kind, entity)

    def get(self, kind: Kind, record_id: str):
        return self._load(kind, self.repo.get(kind.value, record_id))

    def require(self, kind: Kind, record_id: str):
        found = self.get(kind, record_id)
        if found is None:
            raise NotFoundError(f"{kind.value} record {record_id} not found")
        return found

    def find(self, kind: Kind, **key_parts):
        return self._load(kind, self.repo.find(kind.value, make_key(kind, **key_parts)))

    def list(self, kind: Kind, session_id: Optional[str] = None,
             where: Optional[Callable[[Any], bool]] = None) -> list:
        items = [self._load(kind, r) for r in self.repo.list(kind.value, session_id)]
        return [i for i in items if where(i)] if where else items

    def delete(self, kind: Kind, record_id: str) -> bool:
        return self.repo.delete(kind.value, record_id)

    def delete_session(self, session_id: str) -> None:
        total = 0
        for kind in Kind:
            total += self.repo.delete_session(kind.value, session_id)
        logger.info("deleted session %s (%d records)", session_id, total)
