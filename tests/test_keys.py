from __future__ import annotations

import pytest

from dmphub.nosql.errors import ItemError
from dmphub.nosql.keys import (
    MSG_UNABLE_TO_ACQUIRE_NEW_ID,
    SORT_KEY_DMP_LATEST_VERSION,
    Key,
    append_partition_key_prefixing,
    append_sort_key_prefix,
    dmp_id_and_version_to_key,
    dmp_id_from_identifier,
    dmp_id_to_url,
    generate_unique_key,
    key_to_dmp_id,
    random_dmp_id,
    remove_partition_key_prefixing,
    remove_sort_key_prefixing,
    version_url,
)

DOMAIN = "doi.org"


def test_partition_key_prefixing_accepts_bare_url_and_prefixed_ids():
    expected = "DMP#doi.org/10.48321/D1AB12cd34"
    assert append_partition_key_prefixing("10.48321/D1AB12cd34", DOMAIN) == expected
    assert append_partition_key_prefixing("https://doi.org/10.48321/D1AB12cd34", DOMAIN) == expected
    assert append_partition_key_prefixing(expected, DOMAIN) == expected


def test_partition_key_prefixing_strips_protocol_from_domain():
    assert append_partition_key_prefixing("10.1/X", "https://doi.org") == "DMP#doi.org/10.1/X"


def test_remove_partition_key_prefixing():
    assert remove_partition_key_prefixing("DMP#doi.org/10.48321/D1AB12cd34", DOMAIN) == "10.48321/D1AB12cd34"
    assert remove_partition_key_prefixing("10.48321/D1AB12cd34", DOMAIN) == "10.48321/D1AB12cd34"
    assert remove_partition_key_prefixing(None, DOMAIN) is None


def test_sort_key_prefixing():
    assert append_sort_key_prefix("2024-01-01T00:00:00+00:00") == "VERSION#2024-01-01T00:00:00+00:00"
    assert append_sort_key_prefix("VERSION#latest") == "VERSION#latest"
    assert append_sort_key_prefix(None) is None

    assert remove_sort_key_prefixing("VERSION#2024-01-01") == "2024-01-01"
    assert remove_sort_key_prefixing(None) == SORT_KEY_DMP_LATEST_VERSION
    assert remove_sort_key_prefixing("VERSION#latest") == SORT_KEY_DMP_LATEST_VERSION


def test_dmp_id_and_version_to_key():
    key = dmp_id_and_version_to_key("10.1/X", None, DOMAIN)
    assert key == Key(partition_key="DMP#doi.org/10.1/X", sort_key="VERSION#latest")

    key = dmp_id_and_version_to_key("10.1/X", "2024-01-01", DOMAIN)
    assert key.sort_key == "VERSION#2024-01-01"

    assert dmp_id_and_version_to_key(None, None, DOMAIN) is None


def test_key_to_dmp_id():
    key = Key(partition_key="DMP#doi.org/10.1/X", sort_key="VERSION#latest")
    assert key_to_dmp_id(key, DOMAIN) == "10.1/X"
    assert key_to_dmp_id(Key(), DOMAIN) is None
    assert key_to_dmp_id(None, DOMAIN) is None


@pytest.mark.parametrize(
    "identifier",
    ["10.1/X", "doi:10.1/X", "https://doi.org/10.1/X", "http://doi.org/10.1/X", "doi.org/10.1/X"],
)
def test_dmp_id_from_identifier(identifier):
    assert dmp_id_from_identifier(identifier, DOMAIN) == "10.1/X"


def test_dmp_id_from_identifier_rejects_blank():
    assert dmp_id_from_identifier("  ", DOMAIN) is None
    assert dmp_id_from_identifier(None, DOMAIN) is None


def test_urls():
    assert dmp_id_to_url("10.1/X", DOMAIN) == "https://doi.org/10.1/X"
    assert (
        version_url("http://localhost:3001/", "10.1/X", "2024-01-01")
        == "http://localhost:3001/dmps/10.1%2FX?version=2024-01-01"
    )
    assert version_url("dmphub.example.org", "10.1/X", "v").startswith("https://dmphub.example.org/dmps/")


def test_random_dmp_id_shape():
    dmp_id = random_dmp_id("10.48321/D1")
    suffix = dmp_id[len("10.48321/D1"):]
    assert dmp_id.startswith("10.48321/D1")
    assert len(suffix) == 8
    assert suffix[:4] == suffix[:4].upper()
    assert suffix[4:] == suffix[4:].lower()


def test_generate_unique_key_retries_until_free():
    seen: list[Key] = []

    def exists(key: Key) -> bool:
        seen.append(key)
        return len(seen) < 3

    key = generate_unique_key(exists, shoulder="10.1/D1", domain=DOMAIN)
    assert len(seen) == 3
    assert key == seen[-1]
    assert key.partition_key.startswith("DMP#doi.org/10.1/D1")
    assert key.sort_key == SORT_KEY_DMP_LATEST_VERSION


def test_generate_unique_key_gives_up():
    calls = []

    def exists(key: Key) -> bool:
        calls.append(key)
        return True

    with pytest.raises(ItemError) as ei:
        generate_unique_key(exists, shoulder="10.1/D1", domain=DOMAIN)
    assert str(ei.value) == MSG_UNABLE_TO_ACQUIRE_NEW_ID
    assert len(calls) == 10
