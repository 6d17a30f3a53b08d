import pytest

from minibase.conditions import (
    AmbiguousColumnError,
    ColMeta,
    ColumnNotFoundError,
    CompOp,
    Condition,
    IncompatibleTypeError,
    SetClause,
    StringOverflowError,
    TabCol,
    Value,
    evaluate_condition,
    evaluate_conditions,
    find_column,
    infer_column,
    orient_conditions,
    pop_conds,
    record_to_dict,
)
from minibase.keys import ColType, decode_key, encode_key


@pytest.fixture
def people_cols():
    return [
        ColMeta("people", "id", ColType.INT, 4, 0),
        ColMeta("people", "name", ColType.STRING, 8, 4),
        ColMeta("people", "age", ColType.INT, 4, 12),
    ]


@pytest.fixture
def scores_cols():
    return [
        ColMeta("scores", "id", ColType.INT, 4, 0),
        ColMeta("scores", "score", ColType.FLOAT, 4, 4),
    ]


def make_person(pid, name, age):
    return (
        encode_key(pid, ColType.INT, 4)
        + encode_key(name, ColType.STRING, 8)
        + encode_key(age, ColType.INT, 4)
    )


def test_tabcol_orders_by_table_then_column():
    cols = [TabCol("b", "a"), TabCol("a", "z"), TabCol("a", "b")]
    assert sorted(cols) == [TabCol("a", "b"), TabCol("a", "z"), TabCol("b", "a")]


def test_int_value_raw_is_little_endian():
    assert Value.of_int(1).to_raw(4) == b"\x01\x00\x00\x00"


def test_float_value_raw_round_trips():
    raw = Value.of_float(2.5).to_raw(4)
    assert decode_key(raw, ColType.FLOAT) == 2.5


def test_string_value_raw_is_nul_padded():
    assert Value.of_str("ab").to_raw(4) == b"ab\0\0"


def test_string_value_overflow():
    with pytest.raises(StringOverflowError):
        Value.of_str("abcdef").to_raw(4)


def test_int_value_with_wrong_length():
    with pytest.raises(ValueError):
        Value.of_int(3).to_raw(8)


def test_value_constructors_set_type():
    assert Value.of_int(5).type is ColType.INT
    assert Value.of_float(1).type is ColType.FLOAT
    assert Value.of_str("x").type is ColType.STRING


def test_of_int_rejects_non_int():
    with pytest.raises(TypeError):
        Value.of_int("5")


@pytest.mark.parametrize(
    "op, expected",
    [
        (CompOp.EQ, CompOp.EQ),
        (CompOp.NE, CompOp.NE),
        (CompOp.LT, CompOp.GT),
        (CompOp.GT, CompOp.LT),
        (CompOp.LE, CompOp.GE),
        (CompOp.GE, CompOp.LE),
    ],
)
def test_swapped(op, expected):
    assert op.swapped() is expected
    assert op.swapped().swapped() is op


def test_condition_needs_rhs():
    with pytest.raises(ValueError):
        Condition(TabCol("people", "id"), CompOp.EQ)


def test_condition_rhs_kind():
    by_val = Condition(TabCol("people", "id"), CompOp.EQ, rhs_val=Value.of_int(1))
    by_col = Condition(TabCol("people", "id"), CompOp.EQ, rhs_col=TabCol("scores", "id"))
    assert by_val.is_rhs_val is True
    assert by_col.is_rhs_val is False


def test_set_clause_holds_parts():
    clause = SetClause(TabCol("", "age"), Value.of_int(30))
    assert clause.lhs.col_name == "age"
    assert clause.rhs == Value.of_int(30)


def test_find_column(people_cols):
    assert find_column(people_cols, TabCol("people", "name")) is people_cols[1]


def test_find_column_missing(people_cols):
    with pytest.raises(ColumnNotFoundError):
        find_column(people_cols, TabCol("people", "email"))


def test_infer_column_fills_table(people_cols, scores_cols):
    result = infer_column(people_cols + scores_cols, TabCol("", "score"))
    assert result == TabCol("scores", "score")


def test_infer_column_ambiguous(people_cols, scores_cols):
    with pytest.raises(AmbiguousColumnError):
        infer_column(people_cols + scores_cols, TabCol("", "id"))


def test_infer_column_unknown(people_cols):
    with pytest.raises(ColumnNotFoundError):
        infer_column(people_cols, TabCol("", "score"))


def test_infer_column_explicit_table(people_cols, scores_cols):
    target = TabCol("scores", "id")
    assert infer_column(people_cols + scores_cols, target) == target
    with pytest.raises(ColumnNotFoundError):
        infer_column(people_cols, TabCol("scores", "id"))


def test_pop_conds_takes_only_solved():
    on_people = Condition(TabCol("people", "age"), CompOp.GT, rhs_val=Value.of_int(18))
    join = Condition(TabCol("people", "id"), CompOp.EQ, rhs_col=TabCol("scores", "id"))
    on_scores = Condition(TabCol("scores", "score"), CompOp.GE, rhs_val=Value.of_float(1.0))
    conds = [on_people, join, on_scores]

    first = pop_conds(conds, ["people"])
    assert first == [on_people]
    assert conds == [join, on_scores]

    second = pop_conds(conds, ["people", "scores"])
    assert second == [join, on_scores]
    assert conds == []


def test_orient_conditions_swaps_sides():
    cond = Condition(TabCol("people", "id"), CompOp.LT, rhs_col=TabCol("scores", "id"))
    (oriented,) = orient_conditions([cond], "scores")
    assert oriented.lhs_col == TabCol("scores", "id")
    assert oriented.rhs_col == TabCol("people", "id")
    assert oriented.op is CompOp.GT


def test_orient_conditions_keeps_own_table():
    cond = Condition(TabCol("people", "age"), CompOp.LE, rhs_val=Value.of_int(3))
    assert orient_conditions([cond], "people") == [cond]


def test_orient_conditions_rejects_foreign():
    cond = Condition(TabCol("people", "age"), CompOp.LE, rhs_val=Value.of_int(3))
    with pytest.raises(ValueError):
        orient_conditions([cond], "scores")


def test_record_to_dict(people_cols):
    record = make_person(7, "ann", 41)
    result = record_to_dict(people_cols, record)
    assert result == {
        TabCol("people", "id"): Value.of_int(7),
        TabCol("people", "name"): Value.of_str("ann"),
        TabCol("people", "age"): Value.of_int(41),
    }


def test_record_to_dict_duplicate_column(people_cols):
    with pytest.raises(ValueError):
        record_to_dict(people_cols + people_cols[:1], make_person(1, "a", 2))


@pytest.mark.parametrize(
    "op, rhs, expected",
    [
        (CompOp.EQ, 30, True),
        (CompOp.EQ, 31, False),
        (CompOp.NE, 31, True),
        (CompOp.LT, 31, True),
        (CompOp.LT, 30, False),
        (CompOp.GT, 29, True),
        (CompOp.GT, 30, False),
        (CompOp.LE, 30, True),
        (CompOp.GE, 31, False),
    ],
)
def test_evaluate_condition_against_value(people_cols, op, rhs, expected):
    record = make_person(1, "bob", 30)
    cond = Condition(TabCol("people", "age"), op, rhs_val=Value.of_int(rhs))
    assert evaluate_condition(people_cols, cond, record) is expected


def test_evaluate_condition_string(people_cols):
    record = make_person(1, "bob", 30)
    eq = Condition(TabCol("people", "name"), CompOp.EQ, rhs_val=Value.of_str("bob"))
    lt = Condition(TabCol("people", "name"), CompOp.LT, rhs_val=Value.of_str("carl"))
    assert evaluate_condition(people_cols, eq, record) is True
    assert evaluate_condition(people_cols, lt, record) is True


def test_evaluate_condition_column_to_column(people_cols):
    cond = Condition(TabCol("people", "id"), CompOp.LT, rhs_col=TabCol("people", "age"))
    assert evaluate_condition(people_cols, cond, make_person(5, "x", 9)) is True
    assert evaluate_condition(people_cols, cond, make_person(9, "x", 5)) is False


def test_evaluate_condition_type_mismatch(people_cols):
    cond = Condition(TabCol("people", "age"), CompOp.EQ, rhs_val=Value.of_str("30"))
    with pytest.raises(IncompatibleTypeError):
        evaluate_condition(people_cols, cond, make_person(1, "bob", 30))


def test_evaluate_condition_unknown_column(people_cols):
    cond = Condition(TabCol("people", "email"), CompOp.EQ, rhs_val=Value.of_int(1))
    with pytest.raises(ColumnNotFoundError):
        evaluate_condition(people_cols, cond, make_person(1, "bob", 30))


def test_evaluate_conditions_requires_all(people_cols):
    record = make_person(1, "bob", 30)
    adult = Condition(TabCol("people", "age"), CompOp.GE, rhs_val=Value.of_int(18))
    named = Condition(TabCol("people", "name"), CompOp.EQ, rhs_val=Value.of_str("amy"))
    assert evaluate_conditions(people_cols, [adult], record) is True
    assert evaluate_conditions(people_cols, [adult, named], record) is False
    assert evaluate_conditions(people_cols, [], record) is True


def test_bound_join_condition_uses_value(people_cols, scores_cols):
    scores_record = encode_key(4, ColType.INT, 4) + encode_key(1.5, ColType.FLOAT, 4)
    bound = record_to_dict(scores_cols, scores_record)[TabCol("scores", "id")]
    cond = Condition(TabCol("people", "id"), CompOp.EQ, rhs_col=TabCol("scores", "id"), rhs_val=bound)
    assert evaluate_condition(people_cols, cond, make_person(4, "dan", 20)) is True
    assert evaluate_condition(people_cols, cond, make_person(5, "dan", 20)) is False