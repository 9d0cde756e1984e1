"""Lazy, forward-only row sequences over a stepping statement."""

from .errors import StaleRowError

_DONE = object()


class Row:
    """Read-only view of the statement's current result row.

    The view is only valid until the statement advances, resets or is
    finalized; after that every accessor raises :class:`StaleRowError`.
    Text and blob values are copied out of engine memory when read.
    """

    __slots__ = ("_stmt", "_generation")

    def __init__(self, stmt, generation):
        self._stmt = stmt
        self._generation = generation

    def _index(self, col):
        if isinstance(col, str):
            return self._stmt.column_index(col)
        return col

    def column_count(self):
        self._stmt._check_row(self._generation)
        return self._stmt.column_count()

    def __len__(self):
        return self.column_count()

    def value_ref(self, col):
        """Decode column ``col`` (index or name) into a Value."""
        self._stmt._check_row(self._generation)
        return self._stmt._column_value(self._index(col))

    def get(self, col):
        return self.value_ref(col).to_python()

    def __getitem__(self, col):
        return self.get(col)

    def __iter__(self):
        for i in range(self.column_count()):
            yield self.get(i)

    def keys(self):
        self._stmt._check_row(self._generation)
        return self._stmt.column_names()

    def as_tuple(self):
        return tuple(self)

    def as_dict(self):
        return dict(zip(self.keys(), self))

    def __repr__(self):
        try:
            return f"<Row {self.as_tuple()!r}>"
        except StaleRowError:
            return "<Row (stale)>"


class Rows:
    """Lazy sequence of :class:`Row` produced by stepping a statement.

    Nothing is stepped until the sequence is consumed. The sequence cannot be
    restarted: once exhausted it keeps returning ``None``. Reset the statement
    and query again for a fresh pass.
    """

    def __init__(self, stmt):
        self._stmt = stmt
        self._epoch = stmt._epoch
        self._pending = None
        self._done = False

    @property
    def statement(self):
        return self._stmt

    def _fetch(self):
        if self._done:
            return _DONE
        self._stmt._check()
        if self._stmt._epoch != self._epoch:
            raise StaleRowError("statement was reset while its rows were being read")
        row = self._stmt._advance()
        if row is None:
            self._done = True
            return _DONE
        return row

    def has_next(self):
        """Step at most once and remember the outcome for :meth:`next`."""
        if self._pending is None:
            self._pending = self._fetch()
        return self._pending is not _DONE

    def next(self):
        """Return the next row, or ``None`` once the statement is done."""
        if self._pending is not None:
            outcome = self._pending
            self._pending = None
        else:
            outcome = self._fetch()
        if outcome is _DONE:
            return None
        return outcome

    def __iter__(self):
        return self

    def __next__(self):
        row = self.next()
        if row is None:
            raise StopIteration
        return row

    def map(self, transform):
        return MappedRows(self, transform)


class MappedRows:
    """Applies ``transform`` to each row as it is produced."""

    def __init__(self, rows, transform):
        self._rows = rows
        self._transform = transform

    def __iter__(self):
        return self

    def __next__(self):
        row = self._rows.next()
        if row is None:
            raise StopIteration
        return self._transform(row)
