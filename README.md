# epaxos

A small replica for the Egalitarian Paxos (EPaxos) consensus protocol. Each replica
keeps an in-memory key-value store. Replicas agree on `put` and `get` commands through
the PreAccept, Accept and Commit phases. Two `put` commands on the same key conflict.
Every other pair of commands commutes.

Replicas talk to each other over TCP, one JSON request and one JSON reply per line.

## Installation

```
pip install .
```

To run the tests:

```
pip install ".[test]"
pytest
```

## Running a cluster

Write a peers file. Each non-empty line names one replica as `<id> <host> <port>`:

```
0 127.0.0.1 7000
1 127.0.0.1 7001
2 127.0.0.1 7002
```

Start each replica in its own terminal:

```
epaxos --id 0 --peersFile peers.txt
epaxos --id 1 --peersFile peers.txt
epaxos --id 2 --peersFile peers.txt
```

Options (each also accepted with a single dash, such as `-id`):

- `--id`: the replica's ID. It must appear in the peers file. The default is `0`.
- `--peersFile`: path to the peers file. The default is `peers.txt`.
- `--log-level`: one of `DEBUG`, `INFO`, `WARN`, `ERROR` or `FATAL`, in any case.
  Any other value means `INFO`. The default is `INFO`.
- `--log-dir`: directory for log files. The default is `logs`. Each replica appends to
  `epaxos_replica_<id>.log` there. Log lines go to the file only, not to the console.

A malformed line in the peers file, or an ID that is not listed, stops the replica
with exit status 1.

Each replica reads commands at its `>>` prompt until end of input:

```
>> put color blue
OK
>> get color
Value: blue
```

`put` and `get` are both proposed to the cluster. `get` then prints the value in the
local store at that moment. Committed instances are executed against the local store by
a background pass that runs once a second. A `get` typed straight after a `put` may
therefore print an empty value.

## Using it as a library

```python
from epaxos.model import Command, CommandID, CommandType
from epaxos.replica import Replica

replica = Replica(0, [])
replica.propose(Command(CommandType.PUT, "color", "blue"), CommandID("cli", 1))
replica.try_execute(0, 0)
print(replica.kv_store.get("color"))  # blue
```

The modules:

- `epaxos.model`: `Command`, `CommandID`, `CommandType`, `InstanceStatus`,
  `Timestamp` and `EPaxosInstance`.
- `epaxos.util`: `commands_conflict`, `append_if_missing`, `equal_deps` and `merge_deps`.
- `epaxos.kvstore`: `KVStore` with `put`, `get` (returns `None` for a missing key) and
  `apply_command`. `apply_command` raises `KVStoreError` for a missing key or an unknown
  command type.
- `epaxos.replica`: `Replica` with `propose` and `try_execute`. `try_execute` returns
  `True` only when it ran a committed instance whose dependencies had all been executed.
- `epaxos.rpc`: the message dataclasses, the `ReplicaRPC` handlers, `start_rpc_server`
  and the `send_*_to_peer` and `send_client_command` calls. Failed calls raise `RPCError`.
  `send_client_command` applies a command straight to the remote store, without consensus.
- `epaxos.logger` and `epaxos.logutil`: levelled, categorised logging.

Logging is set up once per process with `epaxos.logger.init_logger`, which takes a
`LoggerConfig` (`default_logger_config` gives one). Later calls have no effect. The
helpers in `epaxos.logutil` do nothing until a logger has been set up. Logging at
`FATAL` raises `SystemExit(1)`.

## Limitations

- Instances and the key-value store live in memory only; nothing survives a restart.
- There is no recovery of instances left unfinished by a failed replica.
- The Accept phase always uses ballot 1. If it does not reach a quorum, the proposal
  is logged as failed and not retried.
- Dependencies are checked only among instances from the same replica.