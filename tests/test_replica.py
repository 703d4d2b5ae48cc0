import socket
import time

import pytest

from epaxos.model import Command, CommandID, CommandType, EPaxosInstance, InstanceStatus
from epaxos.replica import Replica
from epaxos.rpc import start_rpc_server


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _put(key, value):
    return Command(CommandType.PUT, key, value)


def _committed(command, deps=()):
    return EPaxosInstance(command=command, seq=1, deps=list(deps),
                          status=InstanceStatus.COMMITTED, committed=True)


@pytest.fixture
def peer():
    replica = Replica(1, [])
    server = start_rpc_server(replica, "127.0.0.1:0")
    yield replica, server.address
    server.close()


def test_new_replica_is_empty():
    replica = Replica(4, ["a:1"])
    assert replica.id == 4
    assert replica.peers == ["a:1"]
    assert replica.instances == {}
    assert replica.next_instance == 0


def test_propose_without_peers_commits_locally():
    replica = Replica(0, [])
    replica.propose(_put("k", "v"), CommandID("c", 1))
    inst = replica.instances[0][0]
    assert inst.committed
    assert inst.status == InstanceStatus.COMMITTED
    assert inst.seq == 1
    assert inst.deps == []
    assert replica.next_instance == 1
    assert replica.try_execute(0, 0)
    assert replica.kv_store.get("k") == "v"
    assert inst.status == InstanceStatus.EXECUTED
    assert not replica.try_execute(0, 0)


def test_try_execute_requires_committed_instance():
    replica = Replica(0, [])
    assert not replica.try_execute(0, 0)
    replica.instances[0] = {0: EPaxosInstance(command=_put("k", "v"))}
    assert not replica.try_execute(0, 0)
    assert replica.kv_store.get("k") is None


def test_try_execute_waits_for_dependencies():
    replica = Replica(0, [])
    replica.instances[0] = {
        0: _committed(_put("a", "1")),
        1: _committed(_put("b", "2"), deps=[0]),
    }
    assert not replica.try_execute(0, 1)
    assert replica.try_execute(0, 0)
    assert replica.try_execute(0, 1)
    assert replica.kv_store.get("b") == "2"


def test_try_execute_failed_get_stays_unexecuted():
    replica = Replica(0, [])
    replica.instances[0] = {0: _committed(Command(CommandType.GET, "missing"))}
    assert not replica.try_execute(0, 0)
    assert not replica.instances[0][0].executed


def test_propose_with_unreachable_peer_still_commits():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    replica = Replica(0, [f"127.0.0.1:{port}"])
    replica.propose(_put("k", "v"), CommandID("c", 1))
    assert replica.instances[0][0].committed


def test_propose_fast_path_replicates_to_peer(peer):
    remote, address = peer
    replica = Replica(0, [address])
    replica.propose(_put("x", "y"), CommandID("c", 1))
    assert replica.instances[0][0].committed
    assert _wait_for(lambda: remote.kv_store.get("x") == "y")
    assert remote.instances[0][0].status == InstanceStatus.EXECUTED


def test_propose_slow_path_merges_peer_dependencies(peer):
    remote, address = peer
    remote.instances[remote.id] = {
        4: EPaxosInstance(command=_put("x", "old"), command_id=CommandID("o", 1), seq=2)
    }
    replica = Replica(0, [address])
    replica.propose(_put("x", "new"), CommandID("c", 1))
    local = replica.instances[0][0]
    assert local.committed
    assert local.deps == [4]
    assert local.seq > 2
    assert _wait_for(lambda: remote.instances[0][0].committed)
    assert remote.instances[0][0].seq == local.seq
    assert remote.instances[0][0].deps == [4]
    assert replica.next_instance == 1