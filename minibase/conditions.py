"""Column references, literal values and the WHERE-clause conditions evaluated against raw records."""

from __future__ import annotations

import enum
from dataclasses import dataclass, replace
from typing import Callable, Iterable, Sequence

from minibase.keys import ColType, compare_keys, decode_key, encode_key


class ColumnNotFoundError(LookupError):
    """Raised when a referenced column does not exist."""

    def __init__(self, column: str) -> None:
        super().__init__(f"column not found: {column}")
        self.column = column


class AmbiguousColumnError(LookupError):
    """Raised when a column name without a table matches columns of several tables."""

    def __init__(self, column: str) -> None:
        super().__init__(f"ambiguous column: {column}")
        self.column = column


class StringOverflowError(ValueError):
    """Raised when a string value is longer than the column that should hold it."""

    def __init__(self, size: int, length: int) -> None:
        super().__init__(f"string of {size} bytes overflows a column of {length}")
        self.size = size
        self.length = length


class IncompatibleTypeError(TypeError):
    """Raised when the two sides of a comparison or assignment have different types."""

    def __init__(self, lhs_type, rhs_type) -> None:
        lhs_name = ColType(lhs_type).name
        rhs_name = ColType(rhs_type).name
        super().__init__(f"incompatible types: lhs {lhs_name}, rhs {rhs_name}")
        self.lhs_type = ColType(lhs_type)
        self.rhs_type = ColType(rhs_type)


@dataclass(frozen=True, order=True)
class TabCol:
    """A column reference; an empty ``tab_name`` means the table is not given."""

    tab_name: str
    col_name: str

    def __str__(self) -> str:
        return f"{self.tab_name}.{self.col_name}" if self.tab_name else self.col_name


@dataclass(frozen=True)
class ColMeta:
    """Where and how a column is stored inside a record."""

    tab_name: str
    name: str
    type: ColType
    len: int
    offset: int
    index: bool = False


@dataclass(frozen=True)
class Value:
    """A typed literal value."""

    type: ColType
    value: int | float | str

    @classmethod
    def of_int(cls, value: int) -> Value:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"expected an int, got {value!r}")
        return cls(ColType.INT, value)

    @classmethod
    def of_float(cls, value: float) -> Value:
        return cls(ColType.FLOAT, float(value))

    @classmethod
    def of_str(cls, value: str) -> Value:
        if not isinstance(value, str):
            raise TypeError(f"expected a str, got {value!r}")
        return cls(ColType.STRING, value)

    def to_raw(self, length: int) -> bytes:
        """Encode the value as the raw bytes of a column of ``length`` bytes."""
        if self.type is ColType.STRING:
            size = len(str(self.value).encode("utf-8"))
            if size > length:
                raise StringOverflowError(size, length)
        return encode_key(self.value, self.type, length)


class CompOp(enum.Enum):
    """Comparison operator of a condition."""

    EQ = "="
    NE = "<>"
    LT = "<"
    GT = ">"
    LE = "<="
    GE = ">="

    def swapped(self) -> CompOp:
        """The operator that gives the same result with its operands exchanged."""
        return _SWAPPED[self]


_SWAPPED = {
    CompOp.EQ: CompOp.EQ,
    CompOp.NE: CompOp.NE,
    CompOp.LT: CompOp.GT,
    CompOp.GT: CompOp.LT,
    CompOp.LE: CompOp.GE,
    CompOp.GE: CompOp.LE,
}

_HOLDS: dict[CompOp, Callable[[int], bool]] = {
    CompOp.EQ: lambda cmp: cmp == 0,
    CompOp.NE: lambda cmp: cmp != 0,
    CompOp.LT: lambda cmp: cmp < 0,
    CompOp.GT: lambda cmp: cmp > 0,
    CompOp.LE: lambda cmp: cmp <= 0,
    CompOp.GE: lambda cmp: cmp >= 0,
}


@dataclass(frozen=True)
class Condition:
    """``lhs_col op rhs``, where the right side is a value or another column.

    When both are present the value takes precedence, as after the other
    column has been bound to a concrete value.
    """

    lhs_col: TabCol
    op: CompOp
    rhs_col: TabCol | None = None
    rhs_val: Value | None = None

    def __post_init__(self) -> None:
        if self.rhs_col is None and self.rhs_val is None:
            raise ValueError("a condition needs a right-hand column or value")

    @property
    def is_rhs_val(self) -> bool:
        """Whether the right side is a value rather than a column."""
        return self.rhs_val is not None


@dataclass(frozen=True)
class SetClause:
    """``lhs = rhs`` in an UPDATE statement."""

    lhs: TabCol
    rhs: Value


def find_column(cols: Sequence[ColMeta], target: TabCol) -> ColMeta:
    """The column of ``cols`` that ``target`` names exactly."""
    for col in cols:
        if col.tab_name == target.tab_name and col.name == target.col_name:
            return col
    raise ColumnNotFoundError(f"{target.tab_name}.{target.col_name}")


def infer_column(all_cols: Iterable[ColMeta], target: TabCol) -> TabCol:
    """Fill in the table of ``target`` from ``all_cols``, or check that the named column exists."""
    all_cols = list(all_cols)
    if not target.tab_name:
        tables = [col.tab_name for col in all_cols if col.name == target.col_name]
        if len(tables) > 1:
            raise AmbiguousColumnError(target.col_name)
        if not tables:
            raise ColumnNotFoundError(target.col_name)
        return TabCol(tables[0], target.col_name)
    find_column(all_cols, target)
    return target


def pop_conds(conds: list[Condition], tab_names: Iterable[str]) -> list[Condition]:
    """Remove from ``conds`` and return those that only refer to ``tab_names``."""
    tables = set(tab_names)

    def solved(cond: Condition) -> bool:
        return cond.lhs_col.tab_name in tables and (
            cond.is_rhs_val or cond.rhs_col.tab_name in tables
        )

    taken = [cond for cond in conds if solved(cond)]
    conds[:] = [cond for cond in conds if not solved(cond)]
    return taken


def orient_conditions(conds: Iterable[Condition], tab_name: str) -> list[Condition]:
    """Rewrite conditions so their left side is a column of ``tab_name``."""
    oriented = []
    for cond in conds:
        if cond.lhs_col.tab_name != tab_name:
            if cond.is_rhs_val or cond.rhs_col.tab_name != tab_name:
                raise ValueError(f"condition on {cond.lhs_col} does not involve table {tab_name!r}")
            cond = replace(cond, lhs_col=cond.rhs_col, rhs_col=cond.lhs_col, op=cond.op.swapped())
        oriented.append(cond)
    return oriented


def _field(record, col: ColMeta) -> bytes:
    data = bytes(record[col.offset : col.offset + col.len])
    if len(data) != col.len:
        raise ValueError(f"record too short for column {col.tab_name}.{col.name}")
    return data


def record_to_dict(cols: Iterable[ColMeta], record) -> dict[TabCol, Value]:
    """Decode every column of ``record`` into a value keyed by its column reference."""
    result: dict[TabCol, Value] = {}
    for col in cols:
        key = TabCol(col.tab_name, col.name)
        if key in result:
            raise ValueError(f"column {key} appears twice")
        result[key] = Value(ColType(col.type), decode_key(_field(record, col), col.type))
    return result


def evaluate_condition(cols: Sequence[ColMeta], cond: Condition, record) -> bool:
    """Whether ``record``, laid out as ``cols``, satisfies ``cond``."""
    lhs_col = find_column(cols, cond.lhs_col)
    lhs = _field(record, lhs_col)
    if cond.is_rhs_val:
        rhs_type = cond.rhs_val.type
        if rhs_type != lhs_col.type:
            raise IncompatibleTypeError(lhs_col.type, rhs_type)
        rhs = cond.rhs_val.to_raw(lhs_col.len)
    else:
        rhs_col = find_column(cols, cond.rhs_col)
        if rhs_col.type != lhs_col.type:
            raise IncompatibleTypeError(lhs_col.type, rhs_col.type)
        rhs = bytes(record[rhs_col.offset : rhs_col.offset + lhs_col.len])
    cmp = compare_keys(lhs, rhs, lhs_col.type, lhs_col.len)
    return _HOLDS[cond.op](cmp)


def evaluate_conditions(cols: Sequence[ColMeta], conds: Iterable[Condition], record) -> bool:
    """Whether ``record`` satisfies every condition in ``conds``."""
    return all(evaluate_condition(cols, cond, record) for cond in conds)