# backend/models.py
# one table per collection; record_key makes singleton records unique by schema
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String, Text

from db import Base


def _now():
    return datetime.now(timezone.utc)


class RecordMixin:
    id = Column(String, primary_key=True)
    session_id = Column(String, index=True, nullable=False)
    record_key = Column(String, unique=True, nullable=False)
    seq = Column(Integer, index=True, nullable=False, default=0)  # insertion order
    payload = Column(Text, nullable=False)  # JSON-encoded entity
    stored_at = Column(DateTime(timezone=True), default=_now, onupdate=_now)


class SessionRow(RecordMixin, Base):
    __tablename__ = "sessions"


class DocumentRow(RecordMixin, Base):
    __tablename__ = "documents"


class AnalysisRow(RecordMixin, Base):
    __tablename__ = "analyses"


class ProposalRow(RecordMixin, Base):
    __tablename__ = "proposals"


class VoteRow(RecordMixin, Base):
    __tablename__ = "votes"


class ApprovedTextRow(RecordMixin, Base):
    __tablename__ = "approved_texts"


class FinalDocumentRow(RecordMixin, Base):
    __tablename__ = "final_documents"


class FlowStateRow(RecordMixin, Base):
    __tablename__ = "flow_states"


ROW_BY_COLLECTION = {
    cls.__tablename__: cls
    for cls in (
        SessionRow, DocumentRow, AnalysisRow, ProposalRow,
        VoteRow, ApprovedTextRow, FinalDocumentRow, FlowStateRow,
    )
}
