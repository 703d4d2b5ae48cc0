"""Formatting helpers and protocol-specific log messages."""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Iterable
from datetime import datetime
from enum import Enum

from .logger import LogCategory, get_logger
from .model import Command, CommandID, CommandType, EPaxosInstance, InstanceStatus
from .util import equal_deps

_STATUS_NAMES = {
    InstanceStatus.NONE: "NONE",
    InstanceStatus.PRE_ACCEPTED: "PRE-ACCEPTED",
    InstanceStatus.ACCEPTED: "ACCEPTED",
    InstanceStatus.COMMITTED: "COMMITTED",
    InstanceStatus.EXECUTED: "EXECUTED",
}


def _format_list(items: Iterable | None) -> str:
    return "[" + " ".join(str(item) for item in (items or ())) + "]"


def format_deps(deps: Iterable[int] | None) -> str:
    """Render a dependency list as ``[a b c]``."""
    return _format_list(deps)


def format_command(cmd: Command) -> str:
    """Render a command as ``GET(key)`` or ``PUT(key, value)``."""
    if cmd.type == CommandType.GET:
        return f"GET({cmd.key})"
    if cmd.type == CommandType.PUT:
        return f"PUT({cmd.key}, {cmd.value})"
    return "UNKNOWN"


def format_command_id(cmd_id: CommandID) -> str:
    """Render a command identifier as ``client:seq``."""
    return f"{cmd_id.client_id}:{cmd_id.seq_num}"


def format_status(status) -> str:
    """Human-readable name of an instance status."""
    try:
        return _STATUS_NAMES[InstanceStatus(status)]
    except ValueError:
        return "UNKNOWN"


def format_instance(inst: EPaxosInstance | None) -> str:
    """One-line summary of an instance, or ``nil`` for a missing one."""
    if inst is None:
        return "nil"
    return ", ".join(
        [
            f"Command: {format_command(inst.command)}",
            f"ID: {format_command_id(inst.command_id)}",
            f"Seq: {inst.seq}",
            f"Deps: {format_deps(inst.deps)}",
            f"Status: {format_status(inst.status)}",
            f"Ballot: {inst.ballot}",
            f"Committed: {str(inst.committed).lower()}",
            f"Executed: {str(inst.executed).lower()}",
        ]
    )


def _json_default(obj):
    if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
        return dataclasses.asdict(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, datetime):
        return obj.isoformat()
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    return str(obj)


def _to_json(args) -> str:
    if dataclasses.is_dataclass(args) and not isinstance(args, type):
        args = dataclasses.asdict(args)
    try:
        return json.dumps(args, default=_json_default, separators=(",", ":"))
    except (TypeError, ValueError):
        return ""


def log_fast_path() -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(LogCategory.COMMIT, "Fast path: committing directly")


def log_slow_path() -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(LogCategory.ACCEPT, "Slow path: sending Accept")


def log_accept_quorum() -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(LogCategory.ACCEPT, "Accept quorum achieved: committing")


def log_accept_quorum_failure() -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.warn(LogCategory.ACCEPT, "Accept quorum not achieved. Will retry or abort.")


def log_instance_state_change(replica_id, instance_id, old_state, new_state, instance) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.CONSENSUS,
        f"Instance R{int(replica_id)}.{instance_id} state change: "
        f"{format_status(old_state)} -> {format_status(new_state)} | {format_instance(instance)}",
    )


def log_pre_accept_phase(replica_id, instance_id, command, cmd_id) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.PREACCEPT,
        f"Starting PreAccept phase for instance R{int(replica_id)}.{instance_id} | "
        f"Command: {format_command(command)} | ID: {format_command_id(cmd_id)}",
    )


def log_pre_accept_response(
    replica_id, instance_id, from_replica, initial_seq, new_seq, initial_deps, new_deps, success
) -> None:
    logger = get_logger()
    if logger is None:
        return
    where = f"PreAccept for instance R{int(replica_id)}.{instance_id} from R{int(from_replica)}"
    if not success:
        logger.warn(LogCategory.PREACCEPT, f"{where}: FAILED")
    elif initial_seq != new_seq or not equal_deps(initial_deps or (), new_deps or ()):
        logger.info(
            LogCategory.PREACCEPT,
            f"{where}: CONFLICT | Seq: {initial_seq} -> {new_seq} | "
            f"Deps: {format_deps(initial_deps)} -> {format_deps(new_deps)}",
        )
    else:
        logger.debug(
            LogCategory.PREACCEPT,
            f"{where}: OK | Seq: {new_seq} | Deps: {format_deps(new_deps)}",
        )


def log_accept_phase(replica_id, instance_id, seq, deps, ballot) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.ACCEPT,
        f"Starting Accept phase for instance R{int(replica_id)}.{instance_id} | "
        f"Seq: {seq} | Deps: {format_deps(deps)} | Ballot: {ballot}",
    )


def log_accept_response(replica_id, instance_id, from_replica, ballot, success) -> None:
    logger = get_logger()
    if logger is None:
        return
    where = f"Accept for instance R{int(replica_id)}.{instance_id} from R{int(from_replica)}"
    if success:
        logger.debug(LogCategory.ACCEPT, f"{where}: OK | Ballot: {ballot}")
    else:
        logger.warn(LogCategory.ACCEPT, f"{where}: FAILED | Ballot: {ballot}")


def log_commit_phase(replica_id, instance_id, seq, deps) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.COMMIT,
        f"Starting Commit phase for instance R{int(replica_id)}.{instance_id} | "
        f"Seq: {seq} | Deps: {format_deps(deps)}",
    )


def log_commit_response(replica_id, instance_id, from_replica, success) -> None:
    logger = get_logger()
    if logger is None:
        return
    where = f"Commit for instance R{int(replica_id)}.{instance_id} from R{int(from_replica)}"
    if success:
        logger.debug(LogCategory.COMMIT, f"{where}: OK")
    else:
        logger.warn(LogCategory.COMMIT, f"{where}: FAILED")


def log_execution_attempt(replica_id, instance_id, instance) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.debug(
        LogCategory.EXECUTION,
        f"Attempting execution for instance R{int(replica_id)}.{instance_id} | "
        f"{format_instance(instance)}",
    )


def log_execution_success(replica_id, instance_id, command, result) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.EXECUTION,
        f"Successfully executed instance R{int(replica_id)}.{instance_id} | "
        f"Command: {format_command(command)} | Result: {result}",
    )


def log_execution_failure(replica_id, instance_id, command, error) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.error(
        LogCategory.EXECUTION,
        f"Failed to execute instance R{int(replica_id)}.{instance_id} | "
        f"Command: {format_command(command)} | Error: {error}",
    )


def log_conflict_detection(
    replica_id, instance_id, other_replica_id, other_instance_id, command, other_command
) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.debug(
        LogCategory.DEPENDENCY,
        f"Conflict detected for instance R{int(replica_id)}.{instance_id} with "
        f"R{int(other_replica_id)}.{other_instance_id} | Command: {format_command(command)} "
        f"conflicts with {format_command(other_command)}",
    )


def log_dependency_added(replica_id, instance_id, dep_instance_id) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.debug(
        LogCategory.DEPENDENCY,
        f"Added dependency for instance R{int(replica_id)}.{instance_id} -> {dep_instance_id}",
    )


def log_replica_start(replica_id, address, peers) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.REPLICA,
        f"Replica R{int(replica_id)} started at {address} with peers: {_format_list(peers)}",
    )


def log_client_request(replica_id, command, cmd_id) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.info(
        LogCategory.CLIENT,
        f"Received client request on R{int(replica_id)} | Command: {format_command(command)} | "
        f"ID: {format_command_id(cmd_id)}",
    )


def log_rpc_call(replica_id, target, method, args) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.debug(
        LogCategory.RPC,
        f"R{int(replica_id)} sending RPC to {target} | Method: {method} | Args: {_to_json(args)}",
    )


def log_rpc_receive(replica_id, method, args) -> None:
    logger = get_logger()
    if logger is None:
        return
    logger.debug(
        LogCategory.RPC,
        f"R{int(replica_id)} received RPC | Method: {method} | Args: {_to_json(args)}",
    )


def log_kvstore_operation(replica_id, operation, key, value, success, error) -> None:
    logger = get_logger()
    if logger is None:
        return
    prefix = f"R{int(replica_id)} KV operation: {operation} | Key: {key} | Value: {value}"
    if success:
        logger.debug(LogCategory.STORAGE, f"{prefix} | Success: true")
    else:
        logger.warn(LogCategory.STORAGE, f"{prefix} | Success: false | Error: {error}")