__all__ = [
    "config",
    "errors",
    "messages",
    "network",
    "logsink",
    "sync",
    "supervisor",
    "crypto",
    "wallet",
    "tx",
    "block",
    "chain",
    "merkle",
    "rpc",
]
