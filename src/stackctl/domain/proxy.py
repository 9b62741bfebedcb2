"""Reverse-proxy configuration model (nginx configuration subset).

Parses ``server``/``location``/``upstream`` blocks well enough to answer
the questions a stack operator asks: which upstream hosts does the proxy
forward to, which location serves a given request path, and does the
static root fall back to ``index.html`` for client-side routing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import urlsplit

LOCATION_MODIFIERS = ("=", "~", "~*", "^~")


class ProxyConfigError(ValueError):
    """Malformed proxy configuration."""

    def __init__(self, message: str, line: int | None = None) -> None:
        where = f" (line {line})" if line is not None else ""
        super().__init__(f"{message}{where}")
        self.line = line


# ---------------------------------------------------------------------------
# Tokenizer and block tree
# ---------------------------------------------------------------------------


@dataclass
class Directive:
    """One directive; ``block`` is set for ``name args { ... }`` forms."""

    name: str
    args: list[str]
    line: int
    block: list[Directive] | None = None

    def find(self, name: str) -> list[Directive]:
        return [d for d in self.block or [] if d.name == name]

    def first(self, name: str) -> Directive | None:
        found = self.find(name)
        return found[0] if found else None


def _tokenize(text: str) -> list[tuple[str, int]]:
    """Split into words and ``{``, ``}``, ``;`` punctuation, tracking line numbers."""
    tokens: list[tuple[str, int]] = []
    i = 0
    line = 1
    n = len(text)
    while i < n:
        ch = text[i]
        if ch == "\n":
            line += 1
            i += 1
        elif ch.isspace():
            i += 1
        elif ch == "#":
            while i < n and text[i] != "\n":
                i += 1
        elif ch in "{};":
            tokens.append((ch, line))
            i += 1
        elif ch in "\"'":
            quote = ch
            start_line = line
            i += 1
            buf: list[str] = []
            while i < n and text[i] != quote:
                if text[i] == "\\" and i + 1 < n:
                    i += 1
                if text[i] == "\n":
                    line += 1
                buf.append(text[i])
                i += 1
            if i >= n:
                raise ProxyConfigError("Unterminated quoted string", start_line)
            tokens.append(("".join(buf), start_line))
            i += 1
        else:
            start = i
            while i < n and not text[i].isspace() and text[i] not in "{};":
                i += 1
            tokens.append((text[start:i], line))
    return tokens


def parse_directives(text: str) -> list[Directive]:
    """Parse configuration text into a directive tree."""
    tokens = _tokenize(text)
    pos = 0

    def parse_block(depth: int) -> list[Directive]:
        nonlocal pos
        items: list[Directive] = []
        words: list[tuple[str, int]] = []
        while pos < len(tokens):
            tok, line = tokens[pos]
            pos += 1
            if tok == ";":
                if not words:
                    raise ProxyConfigError("Unexpected ';'", line)
                items.append(Directive(words[0][0], [w for w, _ in words[1:]], words[0][1]))
                words = []
            elif tok == "{":
                if not words:
                    raise ProxyConfigError("Block without a name", line)
                head = Directive(words[0][0], [w for w, _ in words[1:]], words[0][1])
                words = []
                head.block = parse_block(depth + 1)
                items.append(head)
            elif tok == "}":
                if words:
                    raise ProxyConfigError(f"Missing ';' after {words[0][0]!r}", words[-1][1])
                if depth == 0:
                    raise ProxyConfigError("Unexpected '}'", line)
                return items
            else:
                words.append((tok, line))
        if words:
            raise ProxyConfigError(f"Missing ';' after {words[0][0]!r}", words[-1][1])
        if depth > 0:
            raise ProxyConfigError("Unbalanced braces: missing '}'", tokens[-1][1] if tokens else None)
        return items

    return parse_block(0)


# ---------------------------------------------------------------------------
# Semantic model
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Location:
    """A ``location`` block."""

    path: str
    modifier: str | None = None
    root: str | None = None
    alias: str | None = None
    try_files: tuple[str, ...] = ()
    proxy_pass: str | None = None
    proxy_set_header: dict[str, str] = field(default_factory=dict)
    line: int = 0

    @property
    def is_regex(self) -> bool:
        return self.modifier in ("~", "~*")

    @property
    def spa_fallback(self) -> bool:
        """True when unmatched paths fall back to ``index.html``."""
        if not self.try_files:
            return False
        return self.try_files[-1].rstrip("/").endswith("index.html")

    def matches(self, path: str) -> bool:
        if self.modifier == "=":
            return path == self.path
        if self.modifier == "~":
            return re.search(self.path, path) is not None
        if self.modifier == "~*":
            return re.search(self.path, path, re.IGNORECASE) is not None
        return path.startswith(self.path)

    def upstream(self) -> tuple[str, int | None] | None:
        """``(host, port)`` of ``proxy_pass``, or None when not proxying."""
        if not self.proxy_pass:
            return None
        target = self.proxy_pass
        if "://" not in target:
            target = f"http://{target}"
        parts = urlsplit(target)
        if parts.hostname is None:
            return None
        return parts.hostname, parts.port


@dataclass(frozen=True)
class ServerBlock:
    """A ``server`` block."""

    listen: tuple[str, ...] = ()
    server_name: tuple[str, ...] = ()
    root: str | None = None
    index: tuple[str, ...] = ()
    locations: tuple[Location, ...] = ()
    line: int = 0

    def listen_ports(self) -> list[int]:
        ports: list[int] = []
        for value in self.listen:
            tail = value.rsplit(":", 1)[-1]
            if tail.isdigit():
                ports.append(int(tail))
        return ports

    def route(self, path: str) -> Location | None:
        """Select the location nginx would use for *path*.

        Exact matches win, then the longest prefix. A ``^~`` longest prefix
        skips the regex pass; otherwise the first matching regex (in file
        order) beats the prefix.
        """
        for loc in self.locations:
            if loc.modifier == "=" and loc.matches(path):
                return loc

        prefixes = [
            loc for loc in self.locations if loc.modifier in (None, "^~") and loc.matches(path)
        ]
        longest = max(prefixes, key=lambda loc: len(loc.path), default=None)
        if longest is not None and longest.modifier == "^~":
            return longest

        for loc in self.locations:
            if loc.is_regex and loc.matches(path):
                return loc
        return longest


@dataclass(frozen=True)
class ProxyConfig:
    """Parsed proxy configuration."""

    servers: tuple[ServerBlock, ...] = ()
    upstreams: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def route(self, path: str, *, server: int = 0) -> Location | None:
        if not self.servers:
            return None
        return self.servers[server].route(path)

    def upstream_targets(self) -> list[tuple[Location, str, int | None]]:
        """``(location, host, port)`` for every ``proxy_pass``.

        Names of ``upstream`` blocks are expanded to their ``server`` entries.
        """
        targets: list[tuple[Location, str, int | None]] = []
        for server in self.servers:
            for loc in server.locations:
                up = loc.upstream()
                if up is None:
                    continue
                host, port = up
                if host in self.upstreams:
                    for member in self.upstreams[host]:
                        m_host, _, m_port = member.partition(":")
                        targets.append((loc, m_host, int(m_port) if m_port.isdigit() else port))
                else:
                    targets.append((loc, host, port))
        return targets


def _location_from(directive: Directive) -> Location:
    if not directive.args:
        raise ProxyConfigError("location without a path", directive.line)
    if directive.args[0] in LOCATION_MODIFIERS and len(directive.args) > 1:
        modifier, path = directive.args[0], directive.args[1]
    else:
        modifier, path = None, directive.args[0]

    def arg(name: str) -> str | None:
        found = directive.first(name)
        return found.args[0] if found and found.args else None

    try_files = directive.first("try_files")
    headers = {d.args[0]: " ".join(d.args[1:]) for d in directive.find("proxy_set_header") if d.args}
    return Location(
        path=path,
        modifier=modifier,
        root=arg("root"),
        alias=arg("alias"),
        try_files=tuple(try_files.args) if try_files else (),
        proxy_pass=arg("proxy_pass"),
        proxy_set_header=headers,
        line=directive.line,
    )


def _server_from(directive: Directive) -> ServerBlock:
    def args_of(name: str) -> tuple[str, ...]:
        found = directive.first(name)
        return tuple(found.args) if found else ()

    listen: list[str] = []
    for d in directive.find("listen"):
        if d.args:
            listen.append(d.args[0])
    root = args_of("root")
    return ServerBlock(
        listen=tuple(listen),
        server_name=args_of("server_name"),
        root=root[0] if root else None,
        index=args_of("index"),
        locations=tuple(_location_from(d) for d in directive.find("location")),
        line=directive.line,
    )


def _collect(directives: list[Directive], name: str) -> list[Directive]:
    """Find *name* blocks at top level or nested inside ``http``."""
    found: list[Directive] = []
    for d in directives:
        if d.name == name and d.block is not None:
            found.append(d)
        elif d.name == "http" and d.block is not None:
            found.extend(_collect(d.block, name))
    return found


def parse_proxy_config(text: str) -> ProxyConfig:
    """Parse nginx-style configuration text into a :class:`ProxyConfig`."""
    directives = parse_directives(text)
    servers = tuple(_server_from(d) for d in _collect(directives, "server"))
    upstreams: dict[str, tuple[str, ...]] = {}
    for d in _collect(directives, "upstream"):
        if not d.args:
            raise ProxyConfigError("upstream without a name", d.line)
        upstreams[d.args[0]] = tuple(s.args[0] for s in d.find("server") if s.args)
    return ProxyConfig(servers=servers, upstreams=upstreams)
