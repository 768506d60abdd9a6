"""
Enrollment Journal Models

Each enrollment transaction is recorded with the last state it reached,
so a crash between steps can be found and reconciled.
"""

from enum import Enum
from uuid import uuid4

from sqlalchemy import Column, DateTime, String, Text, Enum as SQLEnum

from provisioner.db.base import utcnow
from provisioner.db.base_class import Base


class EnrollmentState(str, Enum):
    """Enrollment transaction state, in order"""
    PENDING = "pending"
    NAME_CHECKED = "name_checked"
    KEYED = "keyed"
    ADDRESSED = "addressed"
    PERSISTED = "persisted"
    CREDENTIALED = "credentialed"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (EnrollmentState.DONE, EnrollmentState.FAILED)


class EnrollmentRecord(Base):
    """
    Journal entry for one enrollment transaction

    Attributes:
        token_jti: Id of the enrollment credential used (None for admin adds)
        state: Last state reached
        assigned_address: Address allocated once ADDRESSED
        peer_id: Peer id once PERSISTED
        error: Failure description when FAILED
    """
    __tablename__ = "enrollment_records"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid4()))
    token_jti = Column(String(64), nullable=True, index=True)
    client_name = Column(String(255), nullable=False)
    state = Column(
        SQLEnum(EnrollmentState, name="enrollment_state", values_callable=lambda x: [e.value for e in x]),
        default=EnrollmentState.PENDING,
        nullable=False,
        index=True
    )
    assigned_address = Column(String(64), nullable=True)
    peer_id = Column(String(36), nullable=True)
    error = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self) -> str:
        return f"<EnrollmentRecord(id={self.id}, client_name={self.client_name}, state={self.state})>"
