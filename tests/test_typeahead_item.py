from __future__ import annotations

import pytest

from dmphub.nosql.errors import ItemError
from dmphub.nosql.typeahead_item import MSG_NO_KEY, MSG_READ_ONLY, TypeaheadItem, find_institutions

ROR_ID = "https://ror.org/00dmfq477"


def _institution(**extra):
    data = {
        "PK": "INSTITUTION",
        "SK": ROR_ID,
        "name": "University of California, Office of the President (UCOP)",
        "searchable_names": ["university of california office of the president", "ucop"],
        "active": 1,
    }
    data.update(extra)
    return data


def test_item_type_and_identifier(adapter):
    item = TypeaheadItem(adapter, _institution())
    assert item.item_type == "INSTITUTION"
    assert item.identifier == ROR_ID
    assert item.source == "DMPHUB"


def test_items_from_another_source_are_read_only(adapter, fake_table):
    item = TypeaheadItem(adapter, _institution(_SOURCE="ROR"))
    assert not item.editable

    with pytest.raises(ItemError) as ei:
        adapter.put(item)
    assert str(ei.value) == MSG_READ_ONLY
    assert not fake_table.items


def test_own_items_are_stamped_on_write(adapter, fake_table):
    item = TypeaheadItem(adapter, _institution())
    assert item.editable
    adapter.put(item)

    stored = fake_table.items[("INSTITUTION", ROR_ID)]
    assert stored["_SOURCE"] == "DMPHUB"
    assert stored["_SOURCE_SYNCED_AT"]


def test_items_need_both_keys(adapter):
    with pytest.raises(ItemError) as ei:
        TypeaheadItem(adapter, {"PK": "INSTITUTION", "name": "x"}).to_nosql_hash()
    assert str(ei.value) == MSG_NO_KEY


def test_to_json_hides_source_bookkeeping(adapter):
    out = TypeaheadItem(adapter, _institution(_SOURCE="ROR", _SOURCE_SYNCED_AT="2024-01-01")).to_json()
    assert out["id"] == ROR_ID
    assert out["name"].startswith("University of California")
    assert not [k for k in out if k.startswith("_")]


def test_find_institutions(adapter, fake_table):
    rows = [
        _institution(),
        _institution(SK="https://ror.org/inactive", searchable_names=["ucop archive"], active=0),
        _institution(SK="https://ror.org/other", searchable_names=["example college"]),
    ]
    for row in rows:
        fake_table.items[(row["PK"], row["SK"])] = row
    fake_table.items[("DMP#localhost:3001/10.1/X", "VERSION#latest")] = {
        "PK": "DMP#localhost:3001/10.1/X",
        "SK": "VERSION#latest",
        "searchable_names": ["ucop"],
    }

    found = find_institutions(adapter, "UCOP")
    assert [i.identifier for i in found] == [ROR_ID]
    assert find_institutions(adapter, "  ") == []
