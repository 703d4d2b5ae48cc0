import socket
import time

import pytest

from epaxos.model import Command, CommandID, CommandType, EPaxosInstance, InstanceStatus
from epaxos.replica import Replica
from epaxos.rpc import (
    AcceptArgs,
    ClientRequest,
    CommitArgs,
    PreAcceptArgs,
    ReplicaRPC,
    RPCError,
    send_accept_to_peer,
    send_client_command,
    send_commit_to_peer,
    send_pre_accept_to_peer,
    start_rpc_server,
)


def _wait_for(predicate, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def _free_port():
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def served():
    replica = Replica(0, [])
    server = start_rpc_server(replica, "127.0.0.1:0")
    yield replica, server.address
    server.close()


def _put(key, value):
    return Command(CommandType.PUT, key, value)


def test_pre_accept_without_conflicts_keeps_proposal():
    replica = Replica(0, [])
    handler = ReplicaRPC(replica)
    args = PreAcceptArgs(1, 5, _put("x", "1"), CommandID("c", 1), seq=4, deps=[2])
    reply = handler.pre_accept(args)
    assert reply.ok
    assert reply.seq == 4
    assert reply.deps == [2]
    stored = replica.instances[1][5]
    assert stored.status == InstanceStatus.PRE_ACCEPTED
    assert stored.seq == 4


def test_pre_accept_conflict_with_local_instance_adds_dependency():
    replica = Replica(0, [])
    replica.instances[0] = {3: EPaxosInstance(command=_put("x", "a"), command_id=CommandID("a", 1), seq=5)}
    reply = ReplicaRPC(replica).pre_accept(
        PreAcceptArgs(1, 0, _put("x", "b"), CommandID("b", 1), seq=1, deps=[])
    )
    assert reply.seq > 5
    assert reply.deps == [3]


def test_pre_accept_conflict_on_other_replica_raises_seq_only():
    replica = Replica(0, [])
    replica.instances[2] = {7: EPaxosInstance(command=_put("x", "a"), command_id=CommandID("a", 1), seq=9)}
    reply = ReplicaRPC(replica).pre_accept(
        PreAcceptArgs(1, 0, _put("x", "b"), CommandID("b", 1), seq=1, deps=[])
    )
    assert reply.seq > 9
    assert reply.deps == []


def test_pre_accept_ignores_reads_and_same_command():
    replica = Replica(0, [])
    cmd_id = CommandID("a", 1)
    replica.instances[0] = {
        1: EPaxosInstance(command=_put("x", "a"), command_id=cmd_id, seq=8),
        2: EPaxosInstance(command=Command(CommandType.GET, "x"), command_id=CommandID("g", 1), seq=8),
    }
    reply = ReplicaRPC(replica).pre_accept(PreAcceptArgs(1, 0, _put("x", "a"), cmd_id, seq=1, deps=[]))
    assert reply.seq == 1
    assert reply.deps == []


def test_accept_records_ballot_and_status():
    replica = Replica(0, [])
    reply = ReplicaRPC(replica).accept(AcceptArgs(2, 4, _put("k", "v"), CommandID("c", 2), 6, [1], ballot=3))
    assert reply.ok
    assert reply.ballot == 3
    stored = replica.instances[2][4]
    assert stored.status == InstanceStatus.ACCEPTED
    assert stored.ballot == 3
    assert stored.deps == [1]


def test_commit_records_and_executes():
    replica = Replica(0, [])
    reply = ReplicaRPC(replica).commit(CommitArgs(1, 0, _put("k", "v"), CommandID("c", 1), 1, []))
    assert reply.ok
    assert replica.instances[1][0].committed
    assert _wait_for(lambda: replica.instances[1][0].executed)
    assert replica.kv_store.get("k") == "v"
    assert replica.instances[1][0].status == InstanceStatus.EXECUTED


def test_handle_client_command_cases():
    replica = Replica(0, [])
    handler = ReplicaRPC(replica)
    assert handler.handle_client_command(ClientRequest(_put("a", "1"))).success
    got = handler.handle_client_command(ClientRequest(Command(CommandType.GET, "a")))
    assert (got.success, got.value) == (True, "1")
    missing = handler.handle_client_command(ClientRequest(Command(CommandType.GET, "zz")))
    assert (missing.success, missing.error) == (False, "Key not found")
    unknown = handler.handle_client_command(ClientRequest(Command(7, "a")))
    assert (unknown.success, unknown.error) == (False, "Unknown command type")


def test_client_command_over_network(served):
    replica, address = served
    assert send_client_command(address, _put("net", "val")).success
    reply = send_client_command(address, Command(CommandType.GET, "net"))
    assert reply.value == "val"
    assert replica.kv_store.get("net") == "val"


def test_pre_accept_and_accept_over_network(served):
    replica, address = served
    reply = send_pre_accept_to_peer(address, PreAcceptArgs(3, 1, _put("q", "w"), CommandID("n", 1), 2, [9]))
    assert reply.ok and reply.seq == 2 and reply.deps == [9]
    stored = replica.instances[3][1]
    assert stored.command == _put("q", "w")
    assert stored.command_id == CommandID("n", 1)
    accepted = send_accept_to_peer(address, AcceptArgs(3, 1, _put("q", "w"), CommandID("n", 1), 2, [9], 4))
    assert accepted.ballot == 4
    assert replica.instances[3][1].status == InstanceStatus.ACCEPTED


def test_commit_over_network_executes(served):
    replica, address = served
    assert send_commit_to_peer(address, CommitArgs(3, 0, _put("c", "d"), CommandID("n", 2), 1, [])).ok
    assert _wait_for(lambda: replica.kv_store.get("c") == "d")


def test_unreachable_peer_raises():
    address = f"127.0.0.1:{_free_port()}"
    with pytest.raises(RPCError):
        send_pre_accept_to_peer(address, PreAcceptArgs())
    with pytest.raises(RPCError, match="failed to connect to replica"):
        send_client_command(address, _put("a", "b"))


def test_listen_on_busy_port_raises(served):
    _, address = served
    with pytest.raises(RPCError, match="failed to listen"):
        start_rpc_server(Replica(1, []), address)