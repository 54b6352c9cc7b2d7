"""
Conditional writes for status transitions.

Every state change is issued as ``UPDATE ... WHERE <key> AND <expected state>``
and the affected row count tells the caller whether it won. Losers re-read the
row so they can tell a missing record from one that moved on.
"""
from sqlalchemy import update

from exceptions import ConflictError, NotFoundError


def compare_and_set(session, model, key_criteria, expected_criteria, values) -> bool:
    """Apply ``values`` only where both criteria hold. Returns True on success.

    Objects already loaded in ``session`` are kept in sync with the new values.
    """
    stmt = (
        update(model)
        .where(*key_criteria)
        .where(*expected_criteria)
        .values(**values)
        .execution_options(synchronize_session='fetch')
    )
    result = session.execute(stmt)
    return result.rowcount == 1


def transition(session, model, ident, expected_criteria, values, resource, conflict_message):
    """Conditionally update the row with primary key ``ident`` and return it.

    Raises NotFoundError when the row does not exist and ConflictError when it
    exists but no longer matches ``expected_criteria``.
    """
    pk = model.__mapper__.primary_key[0]
    if compare_and_set(session, model, [pk == ident], expected_criteria, values):
        return session.get(model, ident, populate_existing=True)

    current = session.get(model, ident, populate_existing=True)
    if current is None:
        raise NotFoundError(resource, ident)
    raise ConflictError(conflict_message, {'id': str(ident)})
