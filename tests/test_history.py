"""Tests for navigation history."""

from relay.client.history import History


def make_history(*urls: str) -> History:
    history = History()
    for url in urls:
        history.push(url)
    return history


def test_empty_history():
    history = History()

    assert history.current is None
    assert history.index == -1
    assert not history.can_go_back
    assert not history.can_go_forward
    assert history.back() is None
    assert history.forward() is None


def test_push_moves_to_tail():
    history = make_history("a", "b", "c")

    assert history.entries == ["a", "b", "c"]
    assert history.index == 2
    assert history.current == "c"


def test_back_and_forward_only_move_position():
    history = make_history("a", "b", "c")

    assert history.back() == "b"
    assert history.back() == "a"
    assert history.back() is None
    assert history.forward() == "b"
    assert history.entries == ["a", "b", "c"]


def test_push_after_back_truncates_forward_entries():
    history = make_history("A", "B", "C")
    history.back()
    history.back()

    history.push("D")

    assert history.entries == ["A", "D"]
    assert history.index == 1
    assert not history.can_go_forward


def test_push_at_tail_keeps_everything():
    history = make_history("a", "b")
    history.push("b")

    assert len(history) == 3
