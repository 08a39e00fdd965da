"""Tests for Reaction, autorun, reaction and observe."""

import pytest

from propstore import autorun, computed, create_store, observe, reaction, to_json


class Name:
    first = "Alice"
    last = "Smith"

    def set(self, **values):
        for key, value in values.items():
            setattr(self, key, value)


class TestAutorun:
    def test_runs_immediately(self):
        name = create_store(Name())
        log = []
        autorun(lambda: log.append(name.first))
        assert log == ["Alice"]

    def test_reruns_on_change(self):
        name = create_store(Name())
        log = []
        autorun(lambda: log.append(name.first))
        name.set(first="Bob")
        assert log == ["Alice", "Bob"]

    def test_ignores_unread_props(self):
        name = create_store(Name())
        log = []
        autorun(lambda: log.append(name.first))
        name.set(last="Jones")
        assert log == ["Alice"]

    def test_dispose_stops(self):
        name = create_store(Name())
        log = []
        r = autorun(lambda: log.append(name.first))
        r.dispose()
        name.set(first="Bob")
        assert log == ["Alice"]  # no additional run

    def test_dependencies_rebuilt_each_run(self):
        class Toggle:
            use_first = True
            first = 1
            second = 2

            def set(self, **values):
                for key, value in values.items():
                    setattr(self, key, value)

        toggle = create_store(Toggle())
        log = []
        autorun(lambda: log.append(toggle.first if toggle.use_first else toggle.second))
        toggle.set(use_first=False)
        toggle.set(first=10)
        assert log == [1, 2]

    def test_repr(self):
        def show():
            pass

        r = autorun(show)
        assert repr(r) == "Reaction(show, active)"
        r.dispose()
        assert repr(r) == "Reaction(show, disposed)"


class TestReaction:
    def test_no_initial_effect(self):
        name = create_store(Name())
        effects = []
        reaction(lambda: name.first, effects.append)
        assert effects == []

    def test_effect_on_change(self):
        name = create_store(Name())
        effects = []
        reaction(lambda: f"{name.first} {name.last}", effects.append)
        name.set(first="Bob")
        assert effects == ["Bob Smith"]
        name.set(last="Jones")
        assert effects == ["Bob Smith", "Bob Jones"]

    def test_fire_immediately(self):
        name = create_store(Name())
        effects = []
        reaction(lambda: name.first, effects.append, fire_immediately=True)
        assert effects == ["Alice"]

    def test_same_result_skips_effect(self):
        name = create_store(Name())
        effects = []
        reaction(lambda: len(name.first), effects.append)
        name.set(first="Alfie")
        assert effects == []
        name.set(first="Al")
        assert effects == [2]

    def test_effect_is_not_tracked(self):
        name = create_store(Name())
        effects = []
        reaction(lambda: name.first, lambda v: effects.append((v, name.last)))
        name.set(first="Bob")
        assert effects == [("Bob", "Smith")]
        name.set(last="Jones")
        assert effects == [("Bob", "Smith")]

    def test_dispose(self):
        name = create_store(Name())
        effects = []
        r = reaction(lambda: name.first, effects.append)
        r.dispose()
        name.set(first="Bob")
        assert effects == []

    def test_subtree_snapshot(self):
        class Board:
            def __init__(self):
                self.cells = [[0, 0], [0, 0]]

            def mark(self, row, col):
                self.cells[row][col] = 1

        board = create_store(Board())
        effects = []
        reaction(lambda: to_json(board.cells), effects.append)
        board.mark(1, 0)
        assert effects == [[[0, 0], [1, 0]]]

    def test_with_computed(self):
        class Cart:
            price = 2
            qty = 1

            @computed
            def total(self):
                return self.price * self.qty

            def set(self, **values):
                for key, value in values.items():
                    setattr(self, key, value)

        cart = create_store(Cart())
        effects = []
        reaction(lambda: cart.total, effects.append)
        cart.set(price=1, qty=2)
        assert effects == []
        cart.set(qty=3)
        assert effects == [3]


class TestObserve:
    def test_requires_a_view(self):
        with pytest.raises(TypeError):
            observe({"plain": True})

    def test_observes_nested_changes(self):
        class Tree:
            def __init__(self):
                self.root = {"child": {"leaf": 1}}

            def grow(self):
                self.root["child"]["leaf"] += 1

        tree = create_store(Tree())
        runs = []

        def watch():
            observe(tree.root)
            runs.append(1)

        autorun(watch)
        tree.grow()
        tree.grow()
        assert len(runs) == 3
