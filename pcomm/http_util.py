"""Form decoding and JSON string escaping for the web UI."""

from __future__ import annotations

_HEX = "0123456789abcdefABCDEF"

_JSON_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\f": "\\f",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}


def url_decode(text: str) -> str:
    """Decode '+' and %XX escapes; malformed escapes are kept as they are."""
    data = text.encode("utf-8")
    out = bytearray()
    i = 0
    n = len(data)
    while i < n:
        byte = data[i]
        if byte == ord("+"):
            out.append(ord(" "))
        elif byte == ord("%") and i + 2 < n + 0 and i + 2 <= n - 1:
            pair = data[i + 1:i + 3].decode("latin-1")
            if all(ch in _HEX for ch in pair):
                out.append(int(pair, 16))
                i += 2
            else:
                out.append(byte)
        else:
            out.append(byte)
        i += 1
    return out.decode("utf-8", errors="replace")


def form_get_field(body: str, key: str) -> str | None:
    """Return the decoded value of key in a urlencoded form body, or None."""
    for segment in body.split("&"):
        name, eq, value = segment.partition("=")
        if eq and name == key:
            return url_decode(value)
    return None


def json_escape(text: str) -> str:
    """Escape text for use inside a JSON string literal."""
    out = []
    for ch in text:
        escaped = _JSON_ESCAPES.get(ch)
        if escaped is not None:
            out.append(escaped)
        elif ord(ch) < 0x20:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return "".join(out)