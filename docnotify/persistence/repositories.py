"""Data access layer (repositories) for the ledger and the watermark.

Repositories encapsulate database operations and return domain models
rather than ORM models. Neither repository commits; the caller owns the
transaction through ``get_session()`` or an explicit ``session.commit()``.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Set

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from docnotify.domain.models import ProcessedDocument, Watermark
from docnotify.logging import get_logger
from docnotify.utils.timestamps import ensure_utc

from .exceptions import DataIntegrityError, PersistenceError
from .schema import LastQueryTimestampModel, ProcessedDocumentModel, _format_datetime

logger = get_logger(__name__, component="database")

# Keeps IN (...) clauses below SQLite's bound-parameter limit
_ID_CHUNK_SIZE = 500

DEFAULT_LOOKBACK = timedelta(days=1)


class DocumentLedger:
    """Keyed store of processed documents.

    Rows are addressed by ``document_id`` and written with ``upsert``; there is
    no delete operation.
    """

    def __init__(self, session: Session):
        self.session = session

    def existing_ids(self, document_ids: Iterable[str]) -> Set[str]:
        """Return the subset of ``document_ids`` that already have a ledger row.

        Raises:
            PersistenceError: If database error occurs
        """
        ids = list(dict.fromkeys(document_ids))
        found: Set[str] = set()
        try:
            for start in range(0, len(ids), _ID_CHUNK_SIZE):
                chunk = ids[start:start + _ID_CHUNK_SIZE]
                stmt = select(ProcessedDocumentModel.document_id).where(
                    ProcessedDocumentModel.document_id.in_(chunk)
                )
                found.update(self.session.execute(stmt).scalars().all())
            return found

        except SQLAlchemyError as e:
            logger.error(f"Error checking existing document ids: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read processed documents: {e}") from e

    def get(self, document_id: str) -> Optional[ProcessedDocument]:
        """Retrieve a ledger row by document id.

        Returns:
            ProcessedDocument if found, None otherwise

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = self._get_model(document_id)
            return model.to_domain() if model is not None else None

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving document {document_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve processed document: {e}") from e

    def upsert(self, document: ProcessedDocument) -> ProcessedDocument:
        """Insert a new ledger row or update the existing row in place.

        Raises:
            DataIntegrityError: On constraint violation
            PersistenceError: If database error occurs
        """
        try:
            existing = self._get_model(document.document_id)

            if existing is not None:
                existing.apply(document)
                self.session.flush()
                return existing.to_domain()

            model = ProcessedDocumentModel.from_domain(document)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()

        except IntegrityError as e:
            logger.error(
                f"Integrity error upserting document {document.document_id}: {e}", exc_info=True
            )
            raise DataIntegrityError(
                f"Failed to upsert processed document due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error upserting document {document.document_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to upsert processed document: {e}") from e

    def save_all(self, documents: List[ProcessedDocument]) -> List[ProcessedDocument]:
        """Upsert several rows in the current transaction.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            return [self.upsert(document) for document in documents]
        except PersistenceError:
            raise
        except Exception as e:
            logger.error(f"Error saving processed documents: {e}", exc_info=True)
            raise PersistenceError(f"Failed to save processed documents: {e}") from e

    def failed(self, document_id: Optional[str] = None) -> List[ProcessedDocument]:
        """Return rows in failed state, optionally restricted to one document id.

        A row is failed when ``message_sent`` is false or ``error_message``
        is non-empty.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = select(ProcessedDocumentModel).where(
                or_(
                    ProcessedDocumentModel.message_sent.is_(False),
                    func.coalesce(ProcessedDocumentModel.error_message, "") != "",
                )
            )
            if document_id is not None:
                stmt = stmt.where(ProcessedDocumentModel.document_id == document_id)
            stmt = stmt.order_by(ProcessedDocumentModel.processed_at.asc())

            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving failed documents: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve failed documents: {e}") from e

    def recent(self, limit: int = 10) -> List[ProcessedDocument]:
        """Return the most recently processed rows, newest first.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(ProcessedDocumentModel)
                .order_by(
                    ProcessedDocumentModel.processed_at.desc(),
                    ProcessedDocumentModel.id.desc(),
                )
                .limit(limit)
            )
            return [m.to_domain() for m in self.session.execute(stmt).scalars().all()]

        except SQLAlchemyError as e:
            logger.error(f"Error retrieving recent documents: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve recent documents: {e}") from e

    def count(self) -> int:
        """Total number of ledger rows."""
        try:
            stmt = select(func.count()).select_from(ProcessedDocumentModel)
            return self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Error counting documents: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count processed documents: {e}") from e

    def count_failed(self) -> int:
        """Number of ledger rows in failed state."""
        try:
            stmt = (
                select(func.count())
                .select_from(ProcessedDocumentModel)
                .where(
                    or_(
                        ProcessedDocumentModel.message_sent.is_(False),
                        func.coalesce(ProcessedDocumentModel.error_message, "") != "",
                    )
                )
            )
            return self.session.execute(stmt).scalar_one()
        except SQLAlchemyError as e:
            logger.error(f"Error counting failed documents: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count failed documents: {e}") from e

    def _get_model(self, document_id: str) -> Optional[ProcessedDocumentModel]:
        stmt = select(ProcessedDocumentModel).where(
            ProcessedDocumentModel.document_id == document_id
        )
        return self.session.execute(stmt).scalar_one_or_none()


class WatermarkStore:
    """Persisted timestamp of the last completed poll."""

    def __init__(self, session: Session):
        self.session = session

    def get_record(self) -> Optional[Watermark]:
        """Return the authoritative watermark row, or None when none exists.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = self._latest_model()
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error reading watermark: {e}", exc_info=True)
            raise PersistenceError(f"Failed to read watermark: {e}") from e

    def get_last(self, now: datetime) -> datetime:
        """Return the watermark value, defaulting to one day before ``now``.

        Never fails on an empty store.

        Raises:
            PersistenceError: If database error occurs
        """
        record = self.get_record()
        if record is None:
            default = now - DEFAULT_LOOKBACK
            logger.info(
                "No watermark recorded yet, using default lookback",
                extra={"event": "watermark.defaulted", "since": default.isoformat()},
            )
            return default
        return record.last_successful_query

    def advance(self, now: datetime) -> Watermark:
        """Move the watermark to ``now``.

        The most recently updated row is mutated; a row is inserted only when
        the table is empty. The stored value never moves backwards: advancing
        to an earlier instant leaves the row untouched, so it also stays the
        authoritative one.

        Raises:
            PersistenceError: If database error occurs
        """
        now = ensure_utc(now)
        try:
            model = self._latest_model()
            now_str = _format_datetime(now)

            if model is None:
                model = LastQueryTimestampModel(
                    last_successful_query=now_str,
                    updated_at=now_str,
                )
                self.session.add(model)
            else:
                current = model.to_domain()
                if now < current.last_successful_query:
                    logger.warning(
                        "Refusing to move watermark backwards",
                        extra={
                            "event": "watermark.not_advanced",
                            "current": current.last_successful_query.isoformat(),
                            "requested": now.isoformat(),
                        },
                    )
                    return current
                model.last_successful_query = now_str
                model.updated_at = now_str

            self.session.flush()
            watermark = model.to_domain()

            logger.info(
                "Watermark advanced",
                extra={
                    "event": "watermark.advanced",
                    "last_successful_query": watermark.last_successful_query.isoformat(),
                },
            )
            return watermark

        except SQLAlchemyError as e:
            logger.error(f"Error advancing watermark: {e}", exc_info=True)
            raise PersistenceError(f"Failed to advance watermark: {e}") from e

    def _latest_model(self) -> Optional[LastQueryTimestampModel]:
        stmt = (
            select(LastQueryTimestampModel)
            .order_by(
                LastQueryTimestampModel.updated_at.desc(),
                LastQueryTimestampModel.id.desc(),
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalars().first()
