# Overview: Generic record access used by every engine service.

"""
Persistence collaborator.

The engine only needs four things from storage, per collection (model):
create, get by id, update by id and query by one field. Keeping them here
means every service maps storage failures the same way:

- a missing id raises NotFoundError
- a concurrency conflict (lock timeout, stale version) propagates untouched
  so run_with_retry can re-run the whole business operation
- any other SQLAlchemy failure becomes PersistenceError

query_by_field makes no ordering promise; callers sort.
"""

from __future__ import annotations

from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..errors import NotFoundError, PersistenceError
from .concurrency import CONFLICT_ERRORS, lock_for_update


@contextmanager
def translate_errors(action: str):
    try:
        yield
    except CONFLICT_ERRORS:
        raise
    except SQLAlchemyError as exc:
        raise PersistenceError(f"Failed to {action}: {exc}") from exc


def create(model, **fields):
    with translate_errors(f"create {model.__tablename__} record"):
        record = model(**fields)
        db.session.add(record)
        db.session.flush()  # assigns record.id without committing
    return record


def get_by_id(model, record_id, *, lock: bool = False):
    with translate_errors(f"read {model.__tablename__} {record_id}"):
        query = db.session.query(model).filter_by(id=record_id)
        if lock:
            query = lock_for_update(query)
        record = query.first()
    if record is None:
        raise NotFoundError(f"{model.__tablename__} record {record_id} not found")
    return record


def update_by_id(model, record_id, patch: dict, *, lock: bool = False):
    record = get_by_id(model, record_id, lock=lock)
    return update_record(record, patch)


def update_record(record, patch: dict):
    """Apply a patch to an already-loaded record and flush it."""
    with translate_errors(f"update {record.__tablename__} {record.id}"):
        for key, value in patch.items():
            setattr(record, key, value)
        db.session.flush()
    return record


def query_by_field(model, field: str, value, *, lock: bool = False) -> list:
    with translate_errors(f"query {model.__tablename__}"):
        query = db.session.query(model).filter(getattr(model, field) == value)
        if lock:
            query = lock_for_update(query)
        return query.all()


def delete_by_id(model, record_id) -> None:
    record = get_by_id(model, record_id)
    with translate_errors(f"delete {model.__tablename__} {record_id}"):
        db.session.delete(record)
        db.session.flush()
