"""
SQLAlchemy base class for models

Re-exports the declarative base from base.py for model inheritance.
"""
from provisioner.db.base import Base

__all__ = ["Base"]
