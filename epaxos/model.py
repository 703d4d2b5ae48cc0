"""Core data types shared by replicas: commands, identifiers and instances."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import IntEnum


@dataclass(frozen=True)
class CommandID:
    """Uniquely identifies a command issued by a client."""

    client_id: str = ""
    seq_num: int = 0


class InstanceStatus(IntEnum):
    """Lifecycle state of a consensus instance."""

    NONE = 0
    PRE_ACCEPTED = 1
    ACCEPTED = 2
    COMMITTED = 3
    EXECUTED = 4


class CommandType(IntEnum):
    """Whether a command reads or writes the store."""

    GET = 0
    PUT = 1


@dataclass(frozen=True)
class Command:
    """A client operation on the key-value store."""

    type: CommandType = CommandType.GET
    key: str = ""
    value: str = ""  # only meaningful for PUT


@dataclass(frozen=True, order=True)
class Timestamp:
    """Logical time used for ordering; ``count`` breaks ties within one instant."""

    time: datetime = datetime.min
    count: int = 0


@dataclass
class EPaxosInstance:
    """A single consensus instance held by a replica."""

    command: Command = field(default_factory=Command)
    command_id: CommandID = field(default_factory=CommandID)
    seq: int = 0
    deps: list[int] = field(default_factory=list)
    status: InstanceStatus = InstanceStatus.NONE
    ballot: int = 0
    committed: bool = False
    executed: bool = False
    timestamp: Timestamp = field(default_factory=Timestamp)
    leader: bool = False