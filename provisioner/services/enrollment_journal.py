"""
Enrollment Journal

Records the progress of each enrollment transaction so an interrupted
enrollment leaves a visible trail (address reserved, peer persisted,
credential issued) instead of a silent leak.
"""

import logging
from typing import List, Optional
from uuid import uuid4

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from provisioner.db.base import utcnow
from provisioner.models.enrollment import EnrollmentRecord, EnrollmentState
from provisioner.services.peer_registry import StorageError

logger = logging.getLogger(__name__)


class EnrollmentJournal:
    """Persistent journal of enrollment transactions"""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _write(self, record: EnrollmentRecord) -> EnrollmentRecord:
        db = self.session_factory()
        try:
            merged = db.merge(record)
            db.commit()
            return merged
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to write enrollment record: {e}")
        finally:
            db.close()

    def begin(self, client_name: str, token_jti: Optional[str] = None) -> EnrollmentRecord:
        """Open a journal record in PENDING state"""
        record = EnrollmentRecord(
            id=str(uuid4()),
            client_name=client_name,
            token_jti=token_jti,
            state=EnrollmentState.PENDING,
        )
        return self._write(record)

    def advance(
        self,
        record: EnrollmentRecord,
        state: EnrollmentState,
        **fields
    ) -> EnrollmentRecord:
        """
        Move a record to a new state

        Args:
            record: Journal record
            state: State reached
            **fields: Columns to set alongside (assigned_address, peer_id)
        """
        record.state = state
        for key, value in fields.items():
            setattr(record, key, value)
        record.updated_at = utcnow()
        logger.debug(f"Enrollment {record.id} ({record.client_name}) -> {state.value}")
        return self._write(record)

    def fail(self, record: EnrollmentRecord, error: str) -> EnrollmentRecord:
        """
        Mark a record FAILED, keeping the last state reached in the error

        Journal write failures are logged, never raised, so the original
        error reaches the caller.
        """
        try:
            current = self.get(record.id) or record
            message = f"{error} (last state: {current.state.value})"
            return self.advance(current, EnrollmentState.FAILED, error=message)
        except StorageError as e:
            logger.error(f"Could not mark enrollment {record.id} failed: {e}")
            return record

    def get(self, record_id: str) -> Optional[EnrollmentRecord]:
        db = self.session_factory()
        try:
            return db.get(EnrollmentRecord, record_id)
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to read enrollment record: {e}")
        finally:
            db.close()

    def list_incomplete(self) -> List[EnrollmentRecord]:
        """Records that never reached a terminal state"""
        db = self.session_factory()
        try:
            return db.query(EnrollmentRecord).filter(
                EnrollmentRecord.state.notin_(
                    [s for s in EnrollmentState if s.is_terminal]
                )
            ).order_by(EnrollmentRecord.created_at).all()
        finally:
            db.close()

    def list_by_state(self, state: EnrollmentState) -> List[EnrollmentRecord]:
        db = self.session_factory()
        try:
            return db.query(EnrollmentRecord).filter(
                EnrollmentRecord.state == state
            ).order_by(EnrollmentRecord.created_at).all()
        finally:
            db.close()
