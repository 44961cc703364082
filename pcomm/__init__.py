"""Building blocks of a peer-to-peer encrypted messenger: crypto, onion layers, framing and storage."""

__version__ = "0.1.0"

__all__ = [
    "base32",
    "config",
    "constants",
    "crypto",
    "db",
    "http_util",
    "msg",
    "net",
    "onion",
    "proto",
]