from run_tracker.sequencer import next_step_id


def test_middle_step_returns_following_id() -> None:
    assert next_step_id([1, 2, 3], 2) == 3


def test_last_step_has_no_successor() -> None:
    assert next_step_id([1, 2, 3], 3) is None


def test_unknown_or_empty_order_returns_none() -> None:
    assert next_step_id([1, 2, 3], 7) is None
    assert next_step_id([], 1) is None


def test_follows_declared_order_not_numeric_order() -> None:
    assert next_step_id([1, 5, 2], 5) == 2
