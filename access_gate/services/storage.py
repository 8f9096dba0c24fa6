import logging
from contextlib import contextmanager

from sqlalchemy import exc, insert
from sqlalchemy.dialects import postgresql, sqlite

from ..errors import StoreUnavailable
from ..models import db

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    'sqlite': sqlite.insert,
    'postgresql': postgresql.insert,
}


def _rollback():
    try:
        db.session.rollback()
    except exc.SQLAlchemyError:
        logger.warning('rollback after store failure failed too', exc_info=True)


@contextmanager
def store_guard(action: str):
    """Turn connectivity failures into StoreUnavailable.

    Integrity and programming errors are left alone, they are bugs or
    business conflicts rather than an unreachable store.
    """
    try:
        yield
    except (exc.OperationalError, exc.TimeoutError, exc.InterfaceError) as e:
        _rollback()
        raise StoreUnavailable(f'{action}: store unreachable') from e
    except exc.DBAPIError as e:
        _rollback()
        if e.connection_invalidated:
            raise StoreUnavailable(f'{action}: connection lost') from e
        raise


def insert_if_absent(model, **values) -> bool:
    """Atomic add-if-absent against the model's unique constraint.

    Returns True when a new row was written. Must run inside store_guard.
    """
    dialect = db.engine.dialect.name
    make_insert = _UPSERT_DIALECTS.get(dialect)
    if make_insert is not None:
        stmt = make_insert(model).values(**values).on_conflict_do_nothing()
        return db.session.execute(stmt).rowcount == 1
    try:
        with db.session.begin_nested():
            db.session.execute(insert(model).values(**values))
    except exc.IntegrityError:
        return False
    return True
