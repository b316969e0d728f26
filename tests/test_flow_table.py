import threading

import pytest

from tcp_flow_monitor.errors import StoreError
from tcp_flow_monitor.models.connection import Endpoint, FlowDirection
from tcp_flow_monitor.models.datagram import ACK
from tcp_flow_monitor.processing.flow_resolver import resolve_flow
from tcp_flow_monitor.storage.kv_store import KeyValueFlowTable
from tcp_flow_monitor.storage.memory_store import InMemoryFlowTable

KEY = "93.184.216.34:80<->10.0.0.5:51000"
A = Endpoint("93.184.216.34", 80)
Z = Endpoint("10.0.0.5", 51000)


@pytest.fixture(params=["memory", "kv"])
def table(request, fake_store):
    if request.param == "memory":
        return InMemoryFlowTable()
    return KeyValueFlowTable(fake_store)


def test_get_or_create_creates_once(table):
    state, created = table.get_or_create(KEY, A, Z)
    assert created
    assert state.a_endpoint == A
    assert state.z_endpoint == Z

    again, created_again = table.get_or_create(KEY, A, Z)
    assert not created_again
    assert again.key == KEY
    assert len(table) == 1


def test_concurrent_get_or_create_single_creation(table):
    results = []
    barrier = threading.Barrier(16)

    def worker():
        barrier.wait()
        results.append(table.get_or_create(KEY, A, Z))

    threads = [threading.Thread(target=worker) for _ in range(16)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert sum(1 for _, created in results if created) == 1
    assert {state.key for state, _ in results} == {KEY}
    assert table.keys() == [KEY]


def test_update_tracks_both_directions(table, make_datagram):
    out = make_datagram(src="10.0.0.5:51000", dst="93.184.216.34:80", seq=1000)
    back = make_datagram(src="93.184.216.34:80", dst="10.0.0.5:51000",
                         payload=512, flags=ACK, seq=5000, ack=1001)

    first = table.update(resolve_flow(out, "10.0.0.5"), out, count_syn=True)
    second = table.update(resolve_flow(back, "10.0.0.5"), back, count_syn=False)

    assert first.created and not second.created
    assert first.key == second.key == KEY
    assert first.direction is FlowDirection.Z_TO_A
    assert first.syn_counter == 1
    assert second.syn_counter == 0

    state = table.get(KEY)
    assert state.z_to_a_syn_counter == 1
    assert state.z_to_a_last_seq == 1000
    assert state.a_to_z_bytes == 512
    assert state.a_to_z_last_seq == 5000
    assert state.a_to_z_last_ack == 1001
    assert len(table) == 1


def test_snapshot_returns_copies(table, make_datagram):
    dg = make_datagram(payload=10)
    identity = resolve_flow(dg, "10.0.0.5")
    table.update(identity, dg, count_syn=True)

    snap = table.snapshot()
    snap[KEY].z_to_a_bytes = 999999

    assert table.get(KEY).z_to_a_bytes == 10


def test_missing_flow_is_none(table):
    assert table.get("1.2.3.4:1<->10.0.0.5:2") is None
    assert table.snapshot() == {}


def test_remove(table):
    table.get_or_create(KEY, A, Z)
    assert table.remove(KEY)
    assert not table.remove(KEY)
    assert KEY not in table


def test_kv_table_surfaces_store_failure(fake_store, make_datagram):
    table = KeyValueFlowTable(fake_store)
    dg = make_datagram()
    identity = resolve_flow(dg, "10.0.0.5")
    table.update(identity, dg, count_syn=True)

    fake_store.fail = True
    with pytest.raises(StoreError):
        table.update(identity, dg, count_syn=True)

    fake_store.fail = False
    state = table.get(KEY)
    assert state.z_to_a_syn_counter == 1
    assert state.z_to_a_packets == 1


def test_kv_table_reads_store_not_cache(fake_store, make_datagram):
    table = KeyValueFlowTable(fake_store)
    dg = make_datagram()
    identity = resolve_flow(dg, "10.0.0.5")
    table.update(identity, dg, count_syn=True)

    # Another writer bumps the counter behind our back
    fake_store.increment_field(KEY, "z_to_a_syn_counter", 5)

    result = table.update(identity, dg, count_syn=True)
    assert result.syn_counter == 7
