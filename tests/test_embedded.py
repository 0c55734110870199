"""Tests for embedded records stored inline with their owner."""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

import pytest

from docmap import ValidationError


@pytest.fixture
def kinds(session):
    class Address(session.EmbeddedDocument):
        street = str
        city = {"type": str, "default": "Springfield"}
        number = {"type": int, "min": 1}

    class Money(session.EmbeddedDocument):
        value = {"type": int, "choices": [1, 5, 10, 20]}

    class Wallet(session.EmbeddedDocument):
        contents = [Money]
        opened = datetime

    class Person(session.Document):
        name = str
        home = Address
        previous = [Address]
        wallet = Wallet

    return Person, Address, Money, Wallet


class TestStructure:
    def test_embedded_has_no_identity(self, kinds):
        _, Address, _, _ = kinds
        assert "_id" not in Address.schema()
        assert not hasattr(Address.create(), "_id")

    def test_defaults_apply_inside_embedded(self, kinds):
        _, Address, _, _ = kinds
        assert Address.create().city == "Springfield"

    def test_embedded_has_no_persistence_operations(self, kinds):
        _, Address, _, _ = kinds
        assert not hasattr(Address, "save")
        assert not hasattr(Address, "find")


class TestPersistence:
    async def test_stored_inline(self, kinds, backend):
        Person, Address, _, _ = kinds
        p = Person.create(name="p", home=Address.create(street="Elm", number=4))
        await p.save()

        raw = await backend.find_one("Person", {"_id": p._id})
        assert raw["home"] == {"street": "Elm", "city": "Springfield", "number": 4}

        loaded = await Person.find_one({"_id": p._id})
        assert isinstance(loaded.home, Address)
        assert loaded.home.street == "Elm"
        assert loaded.home.number == 4

    async def test_array_of_embedded(self, kinds):
        Person, Address, _, _ = kinds
        p = Person.create(name="p")
        p.previous = [Address.create(street="A", number=1), Address.create(street="B", number=2)]
        await p.save()

        loaded = await Person.find_one({"_id": p._id})
        assert [a.street for a in loaded.previous] == ["A", "B"]
        assert all(isinstance(a, Address) for a in loaded.previous)

    async def test_nested_embedded(self, kinds):
        Person, _, Money, Wallet = kinds
        wallet = Wallet.create(contents=[Money.create(value=5), Money.create(value=20)], opened=0)
        p = await Person.create(name="p", wallet=wallet).save()

        loaded = await Person.find_one({"_id": p._id})
        assert [m.value for m in loaded.wallet.contents] == [5, 20]
        assert loaded.wallet.opened == datetime(1970, 1, 1, tzinfo=timezone.utc)

    async def test_created_from_plain_mapping(self, kinds):
        Person, Address, _, _ = kinds
        p = Person.create({"name": "p", "home": {"street": "Oak", "number": 3}})
        assert isinstance(p.home, Address)
        assert p.home.city == "Springfield"
        await p.save()


class TestValidation:
    async def test_invalid_embedded_fails_owner_save(self, kinds, session):
        Person, Address, _, _ = kinds
        p = Person.create(name="p", home=Address.create(street="Elm", number=0))
        with pytest.raises(ValidationError) as exc:
            await p.save()
        assert exc.value.kind == "Address"
        assert exc.value.field == "number"
        assert await Person.count() == 0

    def test_invalid_nested_array_element(self, kinds):
        Person, _, Money, Wallet = kinds
        p = Person.create(name="p", wallet=Wallet.create(contents=[Money.create(value=3)]))
        with pytest.raises(ValidationError) as exc:
            p.validate()
        assert exc.value.field == "value"

    def test_wrong_embedded_kind_rejected(self, kinds):
        Person, _, Money, _ = kinds
        with pytest.raises(ValidationError) as exc:
            Person.create(name="p", home=Money.create(value=1)).validate()
        assert exc.value.field == "home"

    def test_plain_dict_is_not_an_embedded_value(self, kinds):
        Person, _, _, _ = kinds
        p = Person.create(name="p")
        p.home = {"street": "raw"}
        with pytest.raises(ValidationError):
            p.validate()


class TestHooks:
    async def test_embedded_hooks_run_with_owner(self, session):
        calls = []

        class Tag(session.EmbeddedDocument):
            label = str

            def pre_save(self):
                calls.append(("tag", self.label))

            async def post_delete(self):
                calls.append(("tag-deleted", self.label))

        class Post(session.Document):
            title = str
            tags = [Tag]

            async def pre_save(self):
                calls.append(("post", self.title))

        post = await Post.create(title="t", tags=[Tag.create(label="a"), Tag.create(label="b")]).save()
        assert sorted(calls) == [("post", "t"), ("tag", "a"), ("tag", "b")]

        calls.clear()
        await post.delete()
        assert sorted(calls) == [("tag-deleted", "a"), ("tag-deleted", "b")]

    async def test_failing_embedded_hook_aborts_save(self, session):
        class Part(session.EmbeddedDocument):
            n = int

            def pre_validate(self):
                raise ValueError("bad part")

        class Machine(session.Document):
            part = Part

        with pytest.raises(ValueError, match="bad part"):
            await Machine.create(part=Part.create(n=1)).save()
        assert await Machine.count() == 0

    async def test_failing_hook_cancels_sibling_hooks(self, session):
        outcome = []

        class Part(session.EmbeddedDocument):
            n = int

            async def pre_save(self):
                raise ValueError("bad part")

        class Machine(session.Document):
            part = Part

            async def pre_save(self):
                try:
                    await asyncio.sleep(10)
                    outcome.append("finished")
                except asyncio.CancelledError:
                    outcome.append("cancelled")
                    raise

        with pytest.raises(ValueError, match="bad part"):
            await Machine.create(part=Part.create(n=1)).save()
        assert outcome == ["cancelled"]
        assert await Machine.count() == 0


class TestSerialize:
    def test_to_json_nests_embedded(self, kinds):
        Person, Address, _, _ = kinds
        p = Person.create(name="p", home=Address.create(street="Elm", number=2))
        out = p.to_json()
        assert out["home"] == {"street": "Elm", "city": "Springfield", "number": 2}
        assert out["previous"] == []
