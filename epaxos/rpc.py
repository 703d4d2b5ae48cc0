"""Message types, request handlers and a JSON-over-TCP transport between replicas."""

from __future__ import annotations

import dataclasses
import json
import socket
import socketserver
import sys
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .logutil import (
    log_accept_phase,
    log_accept_response,
    log_commit_phase,
    log_commit_response,
    log_conflict_detection,
    log_dependency_added,
    log_pre_accept_phase,
    log_pre_accept_response,
    log_rpc_call,
    log_rpc_receive,
)
from .model import Command, CommandID, CommandType, EPaxosInstance, InstanceStatus
from .util import append_if_missing, commands_conflict

if TYPE_CHECKING:
    from .replica import Replica

_TIMEOUT = 10.0

PRE_ACCEPT_METHOD = "ReplicaRPC.PreAccept"
COMMIT_METHOD = "ReplicaRPC.Commit"
ACCEPT_METHOD = "ReplicaRPC.Accept"
CLIENT_METHOD = "ReplicaRPC.HandleClientCommand"


class RPCError(Exception):
    """Raised when a remote call cannot be made or the remote side reports an error."""


@dataclass
class PreAcceptArgs:
    replica_id: int = 0
    instance_id: int = 0
    command: Command = field(default_factory=Command)
    command_id: CommandID = field(default_factory=CommandID)
    seq: int = 0
    deps: list[int] = field(default_factory=list)


@dataclass
class PreAcceptReply:
    ok: bool = False
    seq: int = 0
    deps: list[int] = field(default_factory=list)


@dataclass
class CommitArgs:
    replica_id: int = 0
    instance_id: int = 0
    command: Command = field(default_factory=Command)
    command_id: CommandID = field(default_factory=CommandID)
    seq: int = 0
    deps: list[int] = field(default_factory=list)


@dataclass
class CommitReply:
    ok: bool = False


@dataclass
class AcceptArgs:
    replica_id: int = 0
    instance_id: int = 0
    command: Command = field(default_factory=Command)
    command_id: CommandID = field(default_factory=CommandID)
    seq: int = 0
    deps: list[int] = field(default_factory=list)
    ballot: int = 0


@dataclass
class AcceptReply:
    ok: bool = False
    ballot: int = 0


@dataclass
class ClientRequest:
    command: Command = field(default_factory=Command)


@dataclass
class ClientReply:
    success: bool = False
    value: str = ""  # only set for GET
    error: str = ""


def _decode_command(data: dict[str, Any]) -> Command:
    raw_type = data.get("type", 0)
    try:
        cmd_type: Any = CommandType(raw_type)
    except ValueError:
        cmd_type = raw_type
    return Command(type=cmd_type, key=data.get("key", ""), value=data.get("value", ""))


def _decode(cls, data: dict[str, Any]):
    kwargs = {}
    for f in dataclasses.fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        if f.name == "command":
            value = _decode_command(value or {})
        elif f.name == "command_id":
            value = CommandID(**(value or {}))
        elif f.name == "deps":
            value = list(value or [])
        kwargs[f.name] = value
    return cls(**kwargs)


class ReplicaRPC:
    """Handlers a replica exposes to its peers and clients."""

    def __init__(self, replica: Replica) -> None:
        self.replica = replica

    def pre_accept(self, args: PreAcceptArgs) -> PreAcceptReply:
        """Record a pre-accepted instance, raising its seq and deps for any conflicts."""
        log_pre_accept_phase(args.replica_id, args.instance_id, args.command, args.command_id)
        replica = self.replica
        with replica.instance_lock:
            replica.instances.setdefault(int(args.replica_id), {})
            max_seq = args.seq
            new_deps = list(args.deps)
            for rid, instance_map in replica.instances.items():
                for iid, inst in instance_map.items():
                    if inst is None or inst.command_id == args.command_id:
                        continue
                    if not commands_conflict(inst.command, args.command):
                        continue
                    log_conflict_detection(
                        args.replica_id, args.instance_id, rid, iid, args.command, inst.command
                    )
                    if inst.seq >= max_seq:
                        max_seq = inst.seq + 1
                    if rid == int(replica.id):
                        log_dependency_added(args.replica_id, args.instance_id, iid)
                        new_deps = append_if_missing(new_deps, iid)

            replica.instances[int(args.replica_id)][args.instance_id] = EPaxosInstance(
                command=args.command,
                command_id=args.command_id,
                seq=max_seq,
                deps=new_deps,
                status=InstanceStatus.PRE_ACCEPTED,
            )
            reply = PreAcceptReply(ok=True, seq=max_seq, deps=list(new_deps))
            log_pre_accept_response(
                args.replica_id, args.instance_id, replica.id,
                args.seq, max_seq, args.deps, new_deps, reply.ok,
            )
            return reply

    def commit(self, args: CommitArgs) -> CommitReply:
        """Record a committed instance and try to execute it in the background."""
        log_commit_phase(args.replica_id, args.instance_id, args.seq, args.deps)
        replica = self.replica
        with replica.instance_lock:
            replica.instances.setdefault(int(args.replica_id), {})[args.instance_id] = EPaxosInstance(
                command=args.command,
                command_id=args.command_id,
                seq=args.seq,
                deps=list(args.deps),
                status=InstanceStatus.COMMITTED,
                committed=True,
            )
        log_commit_response(args.replica_id, args.instance_id, replica.id, True)
        threading.Thread(
            target=replica.try_execute,
            args=(int(args.replica_id), args.instance_id),
            daemon=True,
        ).start()
        return CommitReply(ok=True)

    def accept(self, args: AcceptArgs) -> AcceptReply:
        """Record an accepted instance with its ballot."""
        log_accept_phase(args.replica_id, args.instance_id, args.seq, args.deps, args.ballot)
        replica = self.replica
        with replica.instance_lock:
            replica.instances.setdefault(int(args.replica_id), {})[args.instance_id] = EPaxosInstance(
                command=args.command,
                command_id=args.command_id,
                seq=args.seq,
                deps=list(args.deps),
                ballot=args.ballot,
                status=InstanceStatus.ACCEPTED,
            )
            reply = AcceptReply(ok=True, ballot=args.ballot)
            log_accept_response(args.replica_id, args.instance_id, replica.id, args.ballot, reply.ok)
            return reply

    def handle_client_command(self, request: ClientRequest) -> ClientReply:
        """Apply a client command directly to the local store."""
        cmd = request.command
        store = self.replica.kv_store
        if cmd.type == CommandType.PUT:
            store.put(cmd.key, cmd.value)
            return ClientReply(success=True)
        if cmd.type == CommandType.GET:
            value = store.get(cmd.key)
            if value is None:
                return ClientReply(success=False, error="Key not found")
            return ClientReply(success=True, value=value)
        return ClientReply(success=False, error="Unknown command type")


def _split_address(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep:
        raise ValueError(f"missing port in address {address!r}")
    return host, int(port)


class _Handler(socketserver.StreamRequestHandler):
    def handle(self) -> None:
        for line in self.rfile:
            if not line.strip():
                continue
            self.wfile.write(self.server.dispatch(line))
            self.wfile.flush()


class _RPCServer(socketserver.ThreadingTCPServer):
    allow_reuse_address = True
    daemon_threads = True

    def __init__(self, server_address: tuple[str, int], handler: ReplicaRPC) -> None:
        super().__init__(server_address, _Handler)
        self._methods: dict[str, tuple[Callable[[Any], Any], type]] = {
            PRE_ACCEPT_METHOD: (handler.pre_accept, PreAcceptArgs),
            COMMIT_METHOD: (handler.commit, CommitArgs),
            ACCEPT_METHOD: (handler.accept, AcceptArgs),
            CLIENT_METHOD: (handler.handle_client_command, ClientRequest),
        }
        self._thread: threading.Thread | None = None

    @property
    def address(self) -> str:
        host, port = self.server_address[:2]
        return f"{host}:{port}"

    def dispatch(self, raw: bytes) -> bytes:
        try:
            request = json.loads(raw)
            method = request.get("method")
            entry = self._methods.get(method)
            if entry is None:
                raise RPCError(f"can't find method {method}")
            func, args_cls = entry
            reply = func(_decode(args_cls, request.get("params") or {}))
            body = {"result": dataclasses.asdict(reply), "error": None}
        except Exception as exc:  # every failure is reported back to the caller
            body = {"result": None, "error": str(exc) or type(exc).__name__}
        return json.dumps(body).encode("utf-8") + b"\n"

    def start(self) -> None:
        self._thread = threading.Thread(target=self.serve_forever, daemon=True)
        self._thread.start()

    def close(self) -> None:
        if self._thread is not None:
            self.shutdown()
            self._thread.join()
            self._thread = None
        self.server_close()

    def __exit__(self, *exc_info) -> None:
        self.close()


def start_rpc_server(replica: Replica, address: str) -> _RPCServer:
    """Serve the replica's handlers on ``host:port`` in a background thread."""
    handler = ReplicaRPC(replica)
    try:
        server = _RPCServer(_split_address(address), handler)
    except (OSError, ValueError) as exc:
        raise RPCError(f"failed to listen on {address}: {exc}") from exc
    print(f"Replica {int(replica.id)} listening on {server.address}", file=sys.stderr)
    server.start()
    return server


def _connect(address: str) -> socket.socket:
    return socket.create_connection(_split_address(address), timeout=_TIMEOUT)


def _exchange(sock: socket.socket, method: str, params) -> dict[str, Any]:
    payload = {"method": method, "params": dataclasses.asdict(params)}
    with sock.makefile("rwb") as stream:
        stream.write(json.dumps(payload).encode("utf-8") + b"\n")
        stream.flush()
        line = stream.readline()
    if not line:
        raise RPCError("connection closed before reply")
    response = json.loads(line)
    if response.get("error"):
        raise RPCError(response["error"])
    return response.get("result") or {}


def _invoke(address: str, method: str, params) -> dict[str, Any]:
    try:
        with _connect(address) as sock:
            return _exchange(sock, method, params)
    except (OSError, ValueError) as exc:
        raise RPCError(str(exc)) from exc


def send_pre_accept_to_peer(address: str, args: PreAcceptArgs) -> PreAcceptReply:
    log_rpc_call(args.replica_id, address, PRE_ACCEPT_METHOD, args)
    result = _invoke(address, PRE_ACCEPT_METHOD, args)
    log_rpc_receive(args.replica_id, PRE_ACCEPT_METHOD, args)
    return _decode(PreAcceptReply, result)


def send_commit_to_peer(address: str, args: CommitArgs) -> CommitReply:
    log_rpc_call(args.replica_id, address, COMMIT_METHOD, args)
    result = _invoke(address, COMMIT_METHOD, args)
    log_rpc_receive(args.replica_id, COMMIT_METHOD, args)
    return _decode(CommitReply, result)


def send_accept_to_peer(address: str, args: AcceptArgs) -> AcceptReply:
    return _decode(AcceptReply, _invoke(address, ACCEPT_METHOD, args))


def send_client_command(address: str, cmd: Command) -> ClientReply:
    """Ask the replica at ``address`` to apply ``cmd`` to its store."""
    try:
        sock = _connect(address)
    except (OSError, ValueError) as exc:
        raise RPCError(f"failed to connect to replica: {exc}") from exc
    try:
        with sock:
            result = _exchange(sock, CLIENT_METHOD, ClientRequest(command=cmd))
    except (OSError, ValueError, RPCError) as exc:
        raise RPCError(f"RPC call failed: {exc}") from exc
    return _decode(ClientReply, result)