"""Command-line entry point: start a replica and read client commands from stdin."""

from __future__ import annotations

import argparse
import sys
import threading
import time
from collections.abc import Iterable

from .logger import EPaxosLogger, LogCategory, LoggerConfig, LogLevel, get_logger, init_logger
from .logutil import log_client_request, log_replica_start
from .model import Command, CommandID, CommandType
from .replica import Replica
from .rpc import RPCError, start_rpc_server

_LEVELS = {level.name: level for level in LogLevel}


def parse_log_level(name: str) -> LogLevel:
    """Map a level name (any case) to a LogLevel, falling back to INFO."""
    return _LEVELS.get(name.strip().upper(), LogLevel.INFO)


def load_peers(lines: Iterable[str], replica_id: int) -> tuple[str, list[str]]:
    """Parse ``id host port`` lines into this replica's address and its peers' addresses.

    Raises ValueError for a malformed line or when ``replica_id`` is not listed.
    """
    this_addr = ""
    peers: list[str] = []
    own_id = str(replica_id)
    for raw in lines:
        line = raw.strip()
        if not line:
            continue
        parts = line.split()
        if len(parts) != 3:
            raise ValueError(f"Invalid line in peers.txt: {line}")
        line_id, host, port = parts
        address = f"{host}:{port}"
        if line_id == own_id:
            this_addr = address
        else:
            peers.append(address)
    if not this_addr:
        raise ValueError(f"Could not find self ID ({replica_id}) in peers.txt")
    return this_addr, peers


def _fatal(logger: EPaxosLogger | None, category: LogCategory, message: str, *args) -> None:
    if logger is not None:
        logger.fatal(category, message, *args)
    print(message % args if args else message, file=sys.stderr)
    raise SystemExit(1)


def _execute_loop(replica: Replica, stop: threading.Event) -> None:
    while not stop.is_set():
        with replica.instance_lock:
            pending = [(rid, iid) for rid, inst_map in replica.instances.items() for iid in inst_map]
        for rid, iid in pending:
            replica.try_execute(rid, iid)
        stop.wait(1.0)


def _new_command_id() -> CommandID:
    return CommandID(client_id="cli", seq_num=time.time_ns() % 1_000_000_000)


def _propose(replica: Replica, logger: EPaxosLogger | None, cmd: Command, label: str) -> bool:
    cmd_id = _new_command_id()
    log_client_request(replica.id, cmd, cmd_id)
    try:
        replica.propose(cmd, cmd_id)
    except (RPCError, OSError) as exc:
        if logger is not None:
            logger.error(LogCategory.CLIENT, "Error executing %s: %s", label, exc)
        print("Error:", exc)
        return False
    return True


def _repl(replica: Replica, logger: EPaxosLogger | None) -> None:
    if logger is not None:
        logger.info(LogCategory.CLIENT, "Replica is running. Type 'put key value' or 'get key':")
    while True:
        print(">> ", end="", flush=True)
        raw = sys.stdin.readline()
        if not raw:
            break
        text = raw.strip()
        if not text:
            continue
        words = text.split(" ")
        if len(words) < 2:
            print("Invalid command")
            continue
        verb = words[0]
        if verb == "put":
            if len(words) != 3:
                print("Usage: put <key> <value>")
                continue
            cmd = Command(type=CommandType.PUT, key=words[1], value=words[2])
            if _propose(replica, logger, cmd, "PUT"):
                print("OK")
        elif verb == "get":
            cmd = Command(type=CommandType.GET, key=words[1])
            ok = _propose(replica, logger, cmd, "GET")
            value = replica.kv_store.get(cmd.key)
            if ok:
                print("Value:", value or "")
        else:
            print("Unknown command")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="epaxos", description="Run an EPaxos replica.")
    parser.add_argument("-id", "--id", dest="id", type=int, default=0,
                        help="Replica ID (must match line in peers.txt)")
    parser.add_argument("-peersFile", "--peersFile", dest="peers_file", default="peers.txt",
                        help="Path to peers.txt file")
    parser.add_argument("-log-level", "--log-level", dest="log_level", default="INFO",
                        help="Log level (DEBUG, INFO, WARN, ERROR, FATAL)")
    parser.add_argument("-log-dir", "--log-dir", dest="log_dir", default="logs",
                        help="Directory for log files")
    return parser


def main(argv=None) -> int:
    """Start a replica, serve its peers and run the interactive client loop."""
    args = _build_parser().parse_args(argv)

    config = LoggerConfig(
        level=parse_log_level(args.log_level),
        replica_id=args.id,
        log_dir=args.log_dir,
        log_file_name=f"epaxos_replica_{args.id}.log",
        console_output=False,
        file_output=True,
    )
    try:
        logger = init_logger(config)
    except OSError as exc:
        print(f"Failed to initialize logger: {exc}")
        return 1
    if logger is None:
        logger = get_logger()

    try:
        if logger is not None:
            logger.info(LogCategory.GENERAL, "EPaxos replica %d starting...", args.id)

        try:
            with open(args.peers_file, encoding="utf-8") as handle:
                this_addr, peers = load_peers(handle, args.id)
        except OSError as exc:
            _fatal(logger, LogCategory.GENERAL, "Failed to open peers file: %s", exc)
        except ValueError as exc:
            _fatal(logger, LogCategory.GENERAL, "%s", exc)

        replica = Replica(args.id, peers)
        log_replica_start(replica.id, this_addr, peers)

        try:
            server = start_rpc_server(replica, this_addr)
        except RPCError as exc:
            _fatal(logger, LogCategory.NETWORK, "Failed to start RPC server: %s", exc)

        stop = threading.Event()
        executor = threading.Thread(target=_execute_loop, args=(replica, stop), daemon=True)
        executor.start()
        try:
            _repl(replica, logger)
        finally:
            stop.set()
            executor.join()
            server.close()
        return 0
    finally:
        if logger is not None:
            logger.close()


if __name__ == "__main__":
    sys.exit(main())