"""A replica: its instance log, key-value store and the proposal protocol."""

from __future__ import annotations

import threading

from .kvstore import KVStore, KVStoreError
from .logger import LogCategory, get_logger
from .logutil import (
    log_accept_quorum,
    log_accept_quorum_failure,
    log_execution_attempt,
    log_execution_failure,
    log_execution_success,
    log_fast_path,
    log_instance_state_change,
    log_slow_path,
)
from .model import Command, CommandID, EPaxosInstance, InstanceStatus
from .rpc import (
    AcceptArgs,
    CommitArgs,
    PreAcceptArgs,
    PreAcceptReply,
    RPCError,
    send_accept_to_peer,
    send_commit_to_peer,
    send_pre_accept_to_peer,
)
from .util import equal_deps, merge_deps


def _commit_quietly(address: str, args: CommitArgs) -> None:
    try:
        send_commit_to_peer(address, args)
    except RPCError:
        pass


class Replica:
    """A single node of the cluster."""

    def __init__(self, replica_id: int, peers) -> None:
        self.id = int(replica_id)
        self.peers: list[str] = list(peers or [])
        # instances[replica_id][instance_id] -> instance
        self.instances: dict[int, dict[int, EPaxosInstance]] = {}
        self.instance_lock = threading.RLock()
        self.kv_store = KVStore()
        self.next_instance = 0
        self.is_leader = False

    def try_execute(self, replica_id: int, instance_id: int) -> bool:
        """Execute a committed instance whose dependencies have all executed."""
        with self.instance_lock:
            inst = self.instances.get(replica_id, {}).get(instance_id)
            if inst is None or not inst.committed or inst.executed:
                return False

            log_execution_attempt(self.id, instance_id, inst)

            for dep_id in inst.deps:
                dep = self.instances[replica_id].get(dep_id)
                if dep is None or not dep.executed:
                    logger = get_logger()
                    if logger is not None:
                        logger.debug(
                            LogCategory.EXECUTION,
                            "Replica %d: Cannot execute instance %d, dependency %d not executed",
                            self.id, instance_id, dep_id,
                        )
                    return False

            old_status = inst.status
            try:
                result = self.kv_store.apply_command(inst.command)
            except KVStoreError as exc:
                log_execution_failure(self.id, instance_id, inst.command, exc)
                return False

            inst.executed = True
            inst.status = InstanceStatus.EXECUTED
            log_execution_success(self.id, instance_id, inst.command, result)
            log_instance_state_change(self.id, instance_id, old_status, inst.status, inst)
            return True

    def _store_committed(self, instance_id: int, command: Command, cmd_id: CommandID,
                         seq: int, deps: list[int]) -> None:
        with self.instance_lock:
            self.instances.setdefault(self.id, {})[instance_id] = EPaxosInstance(
                command=command,
                command_id=cmd_id,
                seq=seq,
                deps=list(deps),
                status=InstanceStatus.COMMITTED,
                committed=True,
            )

    def _broadcast_commit(self, args: CommitArgs) -> None:
        for peer in self.peers:
            threading.Thread(target=_commit_quietly, args=(peer, args), daemon=True).start()

    def propose(self, command: Command, cmd_id: CommandID) -> None:
        """Run the PreAccept round and commit by the fast or slow path."""
        with self.instance_lock:
            instance_id = self.next_instance
            self.next_instance += 1

        args = PreAcceptArgs(
            replica_id=self.id,
            instance_id=instance_id,
            command=command,
            command_id=cmd_id,
            seq=1,
            deps=[],
        )
        replies = [PreAcceptReply(ok=True, seq=args.seq, deps=list(args.deps))]
        ok_count = 1
        for peer in self.peers:
            try:
                reply = send_pre_accept_to_peer(peer, args)
            except RPCError as exc:
                logger = get_logger()
                if logger is not None:
                    logger.error(LogCategory.PREACCEPT, "PreAccept to %s failed: %s", peer, exc)
                continue
            if reply.ok:
                ok_count += 1
                replies.append(reply)

        base = replies[0]
        same = all(r.seq == base.seq and equal_deps(r.deps, base.deps) for r in replies[1:])
        quorum = len(self.peers) // 2

        if same and ok_count > quorum:
            log_fast_path()
            self._broadcast_commit(CommitArgs(
                replica_id=self.id, instance_id=instance_id, command=command,
                command_id=cmd_id, seq=base.seq, deps=list(base.deps),
            ))
            self._store_committed(instance_id, command, cmd_id, base.seq, base.deps)
            return

        log_slow_path()
        max_seq = max(r.seq for r in replies)
        all_deps = merge_deps(replies)
        accept_args = AcceptArgs(
            replica_id=self.id, instance_id=instance_id, command=command,
            command_id=cmd_id, seq=max_seq, deps=all_deps, ballot=1,
        )
        ack_count = 1
        for peer in self.peers:
            try:
                reply = send_accept_to_peer(peer, accept_args)
            except RPCError as exc:
                logger = get_logger()
                if logger is not None:
                    logger.error(LogCategory.ACCEPT, "Accept to %s failed: %s", peer, exc)
                continue
            if reply.ok:
                ack_count += 1

        if ack_count > quorum:
            log_accept_quorum()
            self._broadcast_commit(CommitArgs(
                replica_id=self.id, instance_id=instance_id, command=command,
                command_id=cmd_id, seq=max_seq, deps=list(all_deps),
            ))
            self._store_committed(instance_id, command, cmd_id, max_seq, all_deps)
        else:
            log_accept_quorum_failure()