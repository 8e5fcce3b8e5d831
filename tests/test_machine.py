"""
Tests for object store and accumulator machines.
"""
import cbor2
import pytest

from adm_sdk.address import ADM_ACTOR_ADDR, Address
from adm_sdk.codec import cid_tag, decode_cid
from adm_sdk.exceptions import DecodeError, ExecutionFailed, NotFound, ObjectError
from adm_sdk.machine import (
    CREATE_EXTERNAL_METHOD, GET_METADATA_METHOD, Accumulator, Machine, ObjectStore, decode_machine_info,
    parse_range,
)
from adm_sdk.machine.accumulator import COUNT_METHOD, GET_METHOD, PEAKS_METHOD, PUSH_METHOD, ROOT_METHOD
from adm_sdk.machine.objectstore import (
    DELETE_OBJECT_METHOD, GET_OBJECT_METHOD, LIST_OBJECTS_METHOD, PUT_OBJECT_METHOD,
)
from adm_sdk.models import (
    MAX_LIST_LIMIT, CommitTxReceipt, ExternalState, InternalState, ListingQuery, PushReturn, SyncTxReceipt,
    WriteAccess,
)

from test_helpers import TEST_CID

STORE = Address.new_id(1234)
ROBUST = Address.from_eth("0x" + "11" * 20)


def sent_params(chain, index=-1):
    return cbor2.loads(chain.broadcasts[index][1][0][6])


def sent_method(chain, index=-1):
    return chain.broadcasts[index][1][0][5]


def test_method_numbers_are_distinct():
    numbers = {
        CREATE_EXTERNAL_METHOD, GET_METADATA_METHOD, PUT_OBJECT_METHOD, DELETE_OBJECT_METHOD,
        GET_OBJECT_METHOD, LIST_OBJECTS_METHOD, PUSH_METHOD, GET_METHOD, COUNT_METHOD, PEAKS_METHOD,
        ROOT_METHOD,
    }
    assert len(numbers) == 11


# ---------------------------------------------------------------------------
# Deployment and metadata
# ---------------------------------------------------------------------------


def test_create_object_store(provider, funded_chain, signer):
    funded_chain.tx_returns[CREATE_EXTERNAL_METHOD] = cbor2.dumps([1234, ROBUST.to_bytes()])

    store, receipt = ObjectStore.create(provider, signer, WriteAccess.PUBLIC)

    assert isinstance(store, ObjectStore)
    assert store.address == ROBUST
    assert receipt.address == ROBUST
    assert receipt.height == funded_chain.height + 1
    assert sent_method(funded_chain) == CREATE_EXTERNAL_METHOD
    assert sent_params(funded_chain) == ["ObjectStore", "Public"]
    assert funded_chain.broadcasts[-1][0] == "broadcast_tx_commit"
    assert Address.from_bytes(funded_chain.broadcasts[-1][1][0][1]) == ADM_ACTOR_ADDR


def test_create_accumulator_without_robust_address(provider, funded_chain, signer):
    funded_chain.tx_returns[CREATE_EXTERNAL_METHOD] = cbor2.dumps({"actor_id": 77, "robust_address": None})
    accumulator, receipt = Accumulator.create(provider, signer)
    assert accumulator.address == Address.new_id(77)
    assert sent_params(funded_chain) == ["Accumulator", "OnlyOwner"]


def test_create_with_bad_return(provider, funded_chain, signer):
    funded_chain.tx_returns[CREATE_EXTERNAL_METHOD] = cbor2.dumps("nope")
    with pytest.raises(DecodeError):
        ObjectStore.create(provider, signer)


def test_metadata(provider, funded_chain, signer):
    funded_chain.calls[GET_METADATA_METHOD] = lambda params: cbor2.dumps({
        "kind": "ObjectStore", "owner": signer.address().to_bytes(), "metadata": {"alias": "photos"},
    })
    info = ObjectStore.attach(STORE).metadata(provider)
    assert info.kind == "ObjectStore"
    assert info.address == STORE
    assert info.owner == signer.address()
    assert info.metadata == {"alias": "photos"}


def test_decode_machine_info_listing_shape():
    info = decode_machine_info(["Accumulator", STORE.to_bytes(), {}])
    assert info.kind == "Accumulator"
    assert info.address == STORE
    with pytest.raises(DecodeError):
        decode_machine_info(5)


def test_machine_identity():
    assert ObjectStore.attach(STORE) == ObjectStore(STORE.to_string())
    assert ObjectStore.attach(STORE) != Accumulator.attach(STORE)
    assert len({ObjectStore(STORE), ObjectStore(STORE)}) == 1
    assert repr(Accumulator(STORE)) == f"Accumulator({STORE})"
    assert issubclass(ObjectStore, Machine)


# ---------------------------------------------------------------------------
# Object store
# ---------------------------------------------------------------------------


def test_add_internal_object(provider, funded_chain, signer):
    funded_chain.tx_returns[PUT_OBJECT_METHOD] = cbor2.dumps(cid_tag(TEST_CID))
    receipt = ObjectStore(STORE).add(provider, signer, "my/object", b"hello", overwrite=True)

    assert isinstance(receipt, CommitTxReceipt)
    assert receipt.data == TEST_CID
    assert sent_method(funded_chain) == PUT_OBJECT_METHOD
    assert sent_params(funded_chain) == [b"my/object", {"Internal": b"hello"}, True]
    assert funded_chain.broadcasts[-1][1][2] is None


@pytest.mark.parametrize("data", [b"", b"x" * 1025])
def test_add_rejects_bad_sizes(provider, funded_chain, signer, data):
    with pytest.raises(ObjectError):
        ObjectStore(STORE).add(provider, signer, "k", data)
    assert funded_chain.broadcasts == []


def test_add_rejects_empty_key(provider, signer):
    with pytest.raises(ObjectError):
        ObjectStore(STORE).add(provider, signer, "", b"x")


def test_add_external_attaches_object_reference(provider, funded_chain, signer):
    receipt = ObjectStore(STORE).add_external(provider, signer, "big/file", TEST_CID, broadcast_mode="sync")

    assert isinstance(receipt, SyncTxReceipt)
    key, external, _ = sent_params(funded_chain)
    assert key == b"big/file"
    assert decode_cid(external["External"]) == TEST_CID
    obj = funded_chain.broadcasts[-1][1][2]
    assert obj[0] == b"big/file"
    assert decode_cid(obj[1]) == TEST_CID
    assert Address.from_bytes(obj[2]) == STORE


def test_delete(provider, funded_chain, signer):
    funded_chain.tx_returns[DELETE_OBJECT_METHOD] = cbor2.dumps(cid_tag(TEST_CID))
    receipt = ObjectStore(STORE).delete(provider, signer, b"my/object")
    assert receipt.data == TEST_CID
    assert sent_method(funded_chain) == DELETE_OBJECT_METHOD
    assert sent_params(funded_chain) == [b"my/object"]


def test_get_internal_with_range(provider, funded_chain):
    seen = []

    def get_object(params):
        seen.append(cbor2.loads(params))
        return cbor2.dumps({"Internal": b"hello world"})

    funded_chain.calls[GET_OBJECT_METHOD] = get_object
    store = ObjectStore(STORE)

    whole = store.get(provider, "my/object")
    assert whole.data == b"hello world"
    assert whole.state == InternalState(size=11)
    assert store.get(provider, "my/object", range="0-4").data == b"hello"
    assert store.get(provider, "my/object", range="-5").data == b"world"
    assert seen[0] == [b"my/object"]


def test_get_external(provider, funded_chain):
    funded_chain.calls[GET_OBJECT_METHOD] = lambda params: cbor2.dumps({"External": [cid_tag(TEST_CID), False]})
    stored = ObjectStore(STORE).get(provider, "big/file", height=100)
    assert stored.state == ExternalState(content_ref=TEST_CID, resolved=False)
    assert stored.data is None


def test_get_missing(provider, funded_chain):
    funded_chain.calls[GET_OBJECT_METHOD] = lambda params: cbor2.dumps(None)
    with pytest.raises(NotFound):
        ObjectStore(STORE).get(provider, "missing")


@pytest.mark.parametrize("spec, size, expected", [
    ("0-4", 10, (0, 4)),
    ("5-", 10, (5, 9)),
    ("-3", 10, (7, 9)),
    ("-30", 10, (0, 9)),
    ("-", 10, (0, 9)),
])
def test_parse_range(spec, size, expected):
    assert parse_range(spec, size) == expected


@pytest.mark.parametrize("spec", ["abc", "1-2-3", "5-2", "0-10", "x-1"])
def test_parse_range_invalid(spec):
    with pytest.raises(ObjectError):
        parse_range(spec, 10)


def _listing(entries):
    return cbor2.dumps([[[key, {"Internal": data}] for key, data in entries], []])


def test_query_groups_remote_entries(provider, funded_chain):
    seen = []

    def list_remote(params):
        seen.append(cbor2.loads(params))
        return _listing([(b"my/object", b"a"), (b"my/data", b"bb")])

    funded_chain.calls[LIST_OBJECTS_METHOD] = list_remote
    store = ObjectStore(STORE)

    root = store.query(provider)
    assert root.objects == []
    assert root.common_prefixes == ["my/"]

    nested = store.query(provider, ListingQuery(prefix="my/", offset=1, limit=1))
    assert [o.key for o in nested.objects] == [b"my/data"]
    assert nested.objects[0].state == InternalState(size=2)
    assert seen == [[b"", b"", 0, MAX_LIST_LIMIT], [b"my/", b"", 0, MAX_LIST_LIMIT]]


def test_query_is_idempotent_at_fixed_height(provider, funded_chain):
    funded_chain.calls[LIST_OBJECTS_METHOD] = lambda params: _listing([(b"a/b", b"1"), (b"c", b"2")])
    store = ObjectStore(STORE)
    assert store.query(provider, height=100) == store.query(provider, height=100)
    assert [h for kind, h in funded_chain.queries if kind == "Call"] == [100, 100]


def test_entries_pages_past_remote_cap(provider, funded_chain):
    keys = [f"f{i}".encode() for i in range(MAX_LIST_LIMIT)] + [b"late/dir/x"]
    seen = []

    def list_remote(params):
        _, _, offset, limit = cbor2.loads(params)
        seen.append((offset, limit))
        return _listing([(key, b"v") for key in keys[offset:offset + limit]])

    funded_chain.calls[LIST_OBJECTS_METHOD] = list_remote
    result = ObjectStore(STORE).query(provider, ListingQuery(limit=5))

    assert [o.key for o in result.objects] == keys[:5]
    assert result.common_prefixes == ["late/"]
    assert seen == [(0, MAX_LIST_LIMIT), (MAX_LIST_LIMIT, MAX_LIST_LIMIT)]
    # The second page is pinned to the height the first page was read at
    assert [h for kind, h in funded_chain.queries if kind == "Call"] == [0, funded_chain.height]


def test_entries_rejects_malformed_listing(provider, funded_chain):
    funded_chain.calls[LIST_OBJECTS_METHOD] = lambda params: cbor2.dumps([[[b"only-key"]], []])
    with pytest.raises(DecodeError):
        ObjectStore(STORE).entries(provider)


# ---------------------------------------------------------------------------
# Accumulator
# ---------------------------------------------------------------------------


def test_push(provider, funded_chain, signer):
    funded_chain.tx_returns[PUSH_METHOD] = cbor2.dumps([cid_tag(TEST_CID), 3])
    receipt = Accumulator(STORE).push(provider, signer, b"event")

    assert receipt.data == PushReturn(root=TEST_CID, index=3)
    assert sent_method(funded_chain) == PUSH_METHOD
    assert sent_params(funded_chain) == b"event"


def test_push_too_large(provider, signer):
    with pytest.raises(ObjectError):
        Accumulator(STORE).push(provider, signer, b"x" * (500 * 1024 + 1))


def test_leaf(provider, funded_chain):
    leaves = [b"first", b"second"]

    def get_leaf(params):
        index = cbor2.loads(params)
        return cbor2.dumps(leaves[index] if index < len(leaves) else None)

    funded_chain.calls[GET_METHOD] = get_leaf
    accumulator = Accumulator(STORE)
    assert accumulator.leaf(provider, 1) == b"second"
    with pytest.raises(NotFound):
        accumulator.leaf(provider, 5)


def test_leaf_as_u8_array(provider, funded_chain):
    funded_chain.calls[GET_METHOD] = lambda params: cbor2.dumps([104, 105])
    assert Accumulator(STORE).leaf(provider, 0) == b"hi"


def test_count_peaks_root(provider, funded_chain):
    funded_chain.calls[COUNT_METHOD] = lambda params: cbor2.dumps(2)
    funded_chain.calls[PEAKS_METHOD] = lambda params: cbor2.dumps([cid_tag(TEST_CID)])
    funded_chain.calls[ROOT_METHOD] = lambda params: cbor2.dumps(cid_tag(TEST_CID))
    accumulator = Accumulator(STORE)

    assert accumulator.count(provider) == 2
    assert accumulator.peaks(provider) == [TEST_CID]
    assert accumulator.root(provider) == TEST_CID


def test_count_rejects_non_integer(provider, funded_chain):
    funded_chain.calls[COUNT_METHOD] = lambda params: cbor2.dumps("two")
    with pytest.raises(DecodeError):
        Accumulator(STORE).count(provider)


def test_reverted_query(provider, funded_chain):
    funded_chain.calls[GET_METHOD] = lambda params: (33, b"", "index out of range")
    with pytest.raises(ExecutionFailed, match="index out of range"):
        Accumulator(STORE).leaf(provider, 100)
