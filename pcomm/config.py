"""Command-line configuration."""

from __future__ import annotations

from dataclasses import dataclass

PROG = "pcomm"
_HOST_CAP = 64


class ConfigError(ValueError):
    """Raised for bad command-line arguments."""

    def __init__(self, message: str, show_usage: bool = False) -> None:
        super().__init__(message)
        self.show_usage = show_usage


class HelpRequested(Exception):
    """Raised when --help is given; the message is the usage text."""


@dataclass
class Config:
    data_dir: str = "./pcomm_data"
    ui_dir: str = "./ui"
    relay_host: str = "0.0.0.0"
    relay_port: int = 9001
    advertise_host: str = ""
    advertise_port: int = 0
    http_host: str = "127.0.0.1"
    http_port: int = 8080
    peers_path: str = "./peers.txt"


def _atoi(text: str) -> int:
    text = text.lstrip()
    sign = 1
    if text[:1] in ("+", "-"):
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    digits = ""
    for ch in text:
        if not ch.isdigit() or not ch.isascii():
            break
        digits += ch
    return sign * int(digits) if digits else 0


def parse_hostport(value: str) -> tuple[str, int]:
    """Split HOST:PORT at the last colon and validate both parts."""
    host, colon, port_text = value.rpartition(":")
    if not colon:
        raise ConfigError(f"missing port in {value!r}")
    if not host or len(host) >= _HOST_CAP:
        raise ConfigError(f"bad host in {value!r}")
    port = _atoi(port_text)
    if port <= 0 or port > 65535:
        raise ConfigError(f"bad port in {value!r}")
    return host, port


def usage(prog: str) -> str:
    """Return the usage text."""
    return (
        "PComm - the other one (prototype)\n\n"
        f"Usage: {prog} [options]\n\n"
        "Options:\n"
        "  --data-dir PATH     Data directory (default ./pcomm_data)\n"
        "  --ui-dir PATH       UI directory (default ./ui)\n"
        "  --relay HOST:PORT   Relay listen address (default 0.0.0.0:9001)\n"
        "  --http HOST:PORT    HTTP listen address (default 127.0.0.1:8080)\n"
        "  --advertise HOST:PORT Public relay address advertised to the mesh (default: use --relay)\n"
        "  --peers PATH        Peers file (default ./peers.txt)\n"
        "\nPeers file format (one per line):\n"
        "  <user_id> <host> <port>\n"
        "Lines starting with # are ignored.\n"
    )


_PATH_OPTIONS = {
    "--data-dir": "data_dir",
    "--ui-dir": "ui_dir",
    "--peers": "peers_path",
}
_ADDR_OPTIONS = {
    "--relay": ("relay_host", "relay_port"),
    "--http": ("http_host", "http_port"),
    "--advertise": ("advertise_host", "advertise_port"),
}


def parse_args(argv) -> Config:
    """Build a Config from arguments (program name excluded)."""
    cfg = Config()
    args = iter(argv)
    for arg in args:
        if arg in ("--help", "-h"):
            raise HelpRequested(usage(PROG))
        if arg not in _PATH_OPTIONS and arg not in _ADDR_OPTIONS:
            raise ConfigError(f"Unknown option: {arg}", show_usage=True)
        value = next(args, None)
        if value is None:
            raise ConfigError(f"Unknown option: {arg}", show_usage=True)
        if arg in _PATH_OPTIONS:
            setattr(cfg, _PATH_OPTIONS[arg], value)
            continue
        try:
            host, port = parse_hostport(value)
        except ConfigError:
            raise ConfigError(f"Bad {arg} value") from None
        host_attr, port_attr = _ADDR_OPTIONS[arg]
        setattr(cfg, host_attr, host)
        setattr(cfg, port_attr, port)
    return cfg