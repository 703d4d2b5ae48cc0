"""An Egalitarian Paxos replica with an in-memory key-value store and a TCP transport."""

__version__ = "0.1.0"

__all__ = ["cli", "kvstore", "logger", "logutil", "model", "replica", "rpc", "util"]