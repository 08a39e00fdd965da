"""Tests for store creation, the read-only outer view and store listeners."""

import json
import logging

import pytest

from propstore import (
    StoreError,
    computed,
    configure_store,
    create_store,
    reset_store,
    subscribe_store,
    to_json,
)


class Counter:
    count = 0

    def increment(self):
        self.count += 1

    def set(self, value):
        self.count = value

    @computed
    def double(self):
        return self.count * 2


class TestCreateStore:
    def test_reads_fields(self):
        counter = create_store(Counter())
        assert counter.count == 0
        assert counter.double == 0

    def test_instance_values_win_over_defaults(self):
        c = Counter()
        c.count = 5
        counter = create_store(c)
        assert counter.count == 5

    def test_isinstance_reports_wrapped_class(self):
        counter = create_store(Counter())
        assert isinstance(counter, Counter)

    def test_names_are_unique(self):
        a = create_store(Counter())
        b = create_store(Counter())
        assert str(a).startswith("Counter@S")
        assert str(a) != str(b)

    def test_custom_name_prefix(self):
        counter = create_store(Counter(), store_name="Main")
        assert str(counter).startswith("Main@S")

    def test_names_not_reused_after_reset(self):
        first = str(create_store(Counter()))
        reset_store()
        assert str(create_store(Counter())) != first

    def test_field_defaults_are_copied(self):
        class Box:
            items = []

            def add(self, item):
                self.items.append(item)

        a = create_store(Box())
        b = create_store(Box())
        a.add(1)
        assert a.items == [1]
        assert b.items == []
        assert Box.items == []

    def test_subclass_overrides(self):
        class Base:
            count = 0

            def bump(self):
                self.count += 1

            @computed
            def label(self):
                return f"n={self.count}"

        class Child(Base):
            step = 10

            def bump(self):
                self.count += self.step

        child = create_store(Child())
        child.bump()
        assert child.count == 10
        assert child.label == "n=10"
        assert isinstance(child, Base)

    def test_static_and_private_class_members_are_plain(self):
        class Config:
            _version = 3
            name = "x"

            @staticmethod
            def default_name():
                return "x"

        config = create_store(Config())
        assert config._version == 3
        assert config.default_name() == "x"

    def test_missing_attribute(self):
        counter = create_store(Counter())
        with pytest.raises(AttributeError):
            counter.nope

    def test_dir_lists_members(self):
        counter = create_store(Counter())
        assert {"count", "double", "increment"} <= set(dir(counter))


class TestProtocolErrors:
    def test_outer_write_raises_before_mutation(self):
        counter = create_store(Counter())
        with pytest.raises(StoreError, match=r"Do not allowed modify data"):
            counter.count = 5
        assert counter.count == 0

    def test_outer_delete_raises(self):
        counter = create_store(Counter())
        with pytest.raises(StoreError):
            del counter.count

    def test_setter_is_rejected(self):
        class Bad:
            _x = 0

            @property
            def x(self):
                return self._x

            @x.setter
            def x(self, value):
                self._x = value

        with pytest.raises(StoreError, match=r"Do not allow setter\(x\) in Store!"):
            create_store(Bad())

    def test_private_instance_attribute_is_rejected(self):
        class Secret:
            def __init__(self):
                self._token = "abc"

        with pytest.raises(StoreError, match="Private props"):
            create_store(Secret())

    def test_private_attribute_write_is_rejected(self):
        class Sneaky:
            value = 1

            def hide(self):
                self._hidden = True

        sneaky = create_store(Sneaky())
        with pytest.raises(StoreError, match="private props"):
            sneaky.hide()

    def test_non_string_key_at_construction(self):
        class Lookup:
            def __init__(self):
                self.table = {"ok": {1: "one"}}

        with pytest.raises(StoreError, match="Non-string key"):
            create_store(Lookup())

    def test_non_string_key_on_write(self):
        class Lookup:
            def __init__(self):
                self.table = {}

            def put(self, key, value):
                self.table[key] = value

        lookup = create_store(Lookup())
        with pytest.raises(StoreError, match="non-string props"):
            lookup.put(1, "one")
        lookup.put("1", "one")
        assert lookup.table["1"] == "one"

    def test_reserved_member_name(self):
        class Clash:
            _node = None

        with pytest.raises(StoreError, match="reserved"):
            create_store(Clash())

    def test_dotted_store_name(self):
        with pytest.raises(StoreError):
            create_store(Counter(), store_name="a.b")

    def test_root_must_be_an_object(self):
        with pytest.raises(StoreError):
            create_store({"count": 0})


class TestSubscribeStore:
    def test_receives_changed_names(self):
        counter = create_store(Counter())
        batches = []
        subscribe_store(counter, batches.append)
        counter.increment()
        assert batches == [{f"{counter}.count"}]

    def test_unsubscribe(self):
        counter = create_store(Counter())
        batches = []
        unsubscribe = subscribe_store(counter, batches.append)
        unsubscribe()
        counter.increment()
        assert batches == []

    def test_no_call_without_net_change(self):
        counter = create_store(Counter())
        batches = []
        subscribe_store(counter, batches.append)
        counter.set(0)
        assert batches == []

    def test_listener_errors_are_logged(self, caplog):
        counter = create_store(Counter())
        batches = []

        def broken(names):
            raise RuntimeError("listener down")

        subscribe_store(counter, broken)
        subscribe_store(counter, batches.append)
        with caplog.at_level(logging.ERROR, logger="propstore"):
            counter.increment()
        assert len(batches) == 1
        assert "Store listener" in caplog.text


class TestSerialization:
    def test_to_json(self):
        class Profile:
            def __init__(self):
                self.name = "ann"
                self.tags = ["a", "b"]
                self.address = {"city": "Oslo"}

        profile = create_store(Profile())
        assert to_json(profile) == {
            "name": "ann",
            "tags": ["a", "b"],
            "address": {"city": "Oslo"},
        }

    def test_json_dumps(self):
        counter = create_store(Counter())
        counter.set(4)
        assert json.loads(json.dumps(counter, default=to_json)) == {"count": 4}

    def test_str_is_the_store_name(self):
        class Profile:
            def __init__(self):
                self.address = {"city": "Oslo"}

        profile = create_store(Profile())
        assert str(profile).startswith("Profile@S")
        assert str(profile.address) == str(profile)
        assert repr(profile.address).startswith(f"DictView({profile}.address")


class TestLogging:
    def test_debug_traces(self, caplog):
        configure_store(debug=True)
        counter = create_store(Counter())
        with caplog.at_level(logging.DEBUG, logger="propstore"):
            counter.increment()
        assert f"call action: {counter}.increment" in caplog.text
        assert "finalize..." in caplog.text

    def test_quiet_by_default(self, caplog):
        configure_store(debug=False)
        counter = create_store(Counter())
        counter.increment()
        assert caplog.records == []
