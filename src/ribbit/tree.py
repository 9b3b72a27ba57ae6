"""Routing trie mapping (method, pattern) pairs to payloads, with path captures.

Inspired by go 1.22+ net/http's routingNode

Pattern syntax:

    /users              literal segments
    /users/:id          ":name" captures exactly one segment
    /static/*           "*" as the last segment captures the rest, under "*"
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Literal
from urllib.parse import unquote

from ribbit.errors import ConfigurationError
from ribbit.frozendict import FrozenDict

type HTTPMethod = Literal[
    "CONNECT", "DELETE", "GET", "HEAD", "OPTIONS", "PATCH", "POST", "PUT", "TRACE"
]

CATCHALL = "*"


class LeafKey(Enum):
    """Valid keys for leaf nodes: HTTP methods.

    Methods from the following RFCs are all observed:

        * RFC 9110: HTTP Semantics, obsoletes 7231, which obsoleted 2616
        * RFC 5789: PATCH Method for HTTP

    ANY_HTTP represents any http method
    """

    CONNECT = "CONNECT"  # Establish a connection to the server.
    DELETE = "DELETE"  # Remove the target.
    GET = "GET"  # Retrieve the target.
    HEAD = "HEAD"  # Same as GET, but only retrieve status line and header section.
    OPTIONS = "OPTIONS"  # Describe the communication options for the target.
    PATCH = "PATCH"  # Apply partial modifications to a target.
    POST = "POST"  # Perform target-specific processing with the request payload.
    PUT = "PUT"  # Replace the target with the request payload.
    TRACE = "TRACE"  # Perform a message loop-back test along the path to the target.

    ANY_HTTP = "ANY_HTTP"  # Any HTTP method.

    def __repr__(self) -> str:
        return str(self.value)


@dataclass(slots=True, frozen=True)
class Node[T]:
    """Segment-based trie node"""

    payload: T | None = field(default=None)
    children: FrozenDict[str | LeafKey, Node[T]] = field(default_factory=FrozenDict)
    wildcard: WildCardNode[T] | None = field(default=None)
    catchall: Node[T] | None = field(default=None)


@dataclass(slots=True, frozen=True)
class WildCardNode[T]:
    name: str
    child: Node[T]


@dataclass(slots=True, frozen=True)
class Match[T]:
    """Result of a successful lookup."""

    payload: T
    params: FrozenDict[str, str]


class PathMatcher[T]:
    """Mutable handle around an immutable routing trie.

    Every ``add`` builds a new trie, so a ``PathMatcher`` can be shared by
    reference between routers while lookups always see the latest table.
    """

    __slots__ = ("_tree",)
    _tree: Node[T]

    def __init__(self) -> None:
        self._tree = Node()

    def add(self, method: str | None, pattern: str, payload: T) -> None:
        """Registers payload at pattern for method, or for any method if None.

        An existing payload at the same (method, pattern) is replaced.
        """
        self._tree = add_route(self._tree, _leaf_key(method), pattern, payload)

    def get(self, method: str | None, pattern: str) -> T | None:
        """Returns what is registered at exactly pattern, without matching."""
        return lookup(self._tree, _leaf_key(method), pattern)

    def find(self, method: str | None, path: str) -> Match[T] | None:
        """Returns the best match for a concrete path, or None.

        path may be percent-encoded. Segments are decoded after splitting,
        both for matching literals and for the captured params.
        """
        if method is None:
            key = LeafKey.ANY_HTTP
        else:
            try:
                key = LeafKey(method.upper())
            except ValueError:  # extension method, only ANY_HTTP can serve it
                key = LeafKey.ANY_HTTP
        return find_match(path, key, self._tree)

    def routes(self) -> list[tuple[LeafKey, str, T]]:
        """Returns every registration as (method, pattern, payload)."""
        return collect_routes(self._tree)


def _leaf_key(method: str | None) -> LeafKey:
    if method is None:
        return LeafKey.ANY_HTTP
    try:
        key = LeafKey(method.upper())
    except ValueError:
        msg = f"unsupported http method {method!r}"
        raise ConfigurationError(msg) from None
    return key


def _segments(path: str) -> tuple[str, ...]:
    return tuple(seg for seg in path.split("/") if seg)


@lru_cache(maxsize=1024)
def find_match[T](path: str, method: LeafKey, tree: Node[T]) -> Match[T] | None:
    """Traverses the tree to find the best match payload.

    Each path segment priority is: exact match > wildcard match > catchall match
    A branch that dead-ends further down falls back to the next option at the
    segment where it was taken.
    Leaf priority is: exact method > ANY_HTTP
    """
    # split before decoding so an encoded "/" stays inside its segment
    segments = tuple(unquote(seg) for seg in _segments(path))
    found = _match_node(tree, segments, 0, method)
    if found is None:
        return None
    payload, params = found
    return Match(payload=payload, params=FrozenDict(params))


def _match_node[T](
    node: Node[T], segments: tuple[str, ...], index: int, method: LeafKey
) -> tuple[T, dict[str, str]] | None:
    if index == len(segments):
        payload = _leaf_payload(node, method)
        return None if payload is None else (payload, {})

    seg = segments[index]
    child = node.children.get(seg)
    if child is not None:  # exact match
        found = _match_node(child, segments, index + 1, method)
        if found is not None:
            return found
    if node.wildcard is not None:  # fallback to wildcard match
        found = _match_node(node.wildcard.child, segments, index + 1, method)
        if found is not None:
            payload, params = found
            return payload, {node.wildcard.name: seg, **params}
    if node.catchall is not None:  # fallback to catchall match
        payload = _leaf_payload(node.catchall, method)
        if payload is not None:
            return payload, {CATCHALL: "/".join(segments[index:])}
    return None


def _leaf_payload[T](node: Node[T], method: LeafKey) -> T | None:
    leaf = node.children.get(method)
    if leaf is None or leaf.payload is None:
        leaf = node.children.get(LeafKey.ANY_HTTP)  # fallback to any method
    if leaf is None:
        return None
    return leaf.payload


def lookup[T](tree: Node[T], method: LeafKey, pattern: str) -> T | None:
    """Walks the tree along the pattern's own segments (no matching)."""
    current: Node[T] | None = tree
    for seg in _segments(pattern):
        if current is None:
            return None
        if seg == CATCHALL:
            current = current.catchall
        elif seg.startswith(":"):
            wildcard = current.wildcard
            current = (
                wildcard.child
                if wildcard is not None and wildcard.name == seg[1:]
                else None
            )
        else:
            current = current.children.get(seg)
    if current is None:
        return None
    leaf = current.children.get(method)
    return None if leaf is None else leaf.payload


def add_route[T](tree: Node[T], method: LeafKey, pattern: str, payload: T) -> Node[T]:
    """add route to tree for payload on method/pattern"""
    new_tree = _construct_route_tree(method, pattern, payload)
    return _merge_trees(tree, new_tree)


def _construct_route_tree[T](method: LeafKey, pattern: str, payload: T) -> Node[T]:
    """construct tree for payload on method/pattern"""
    leaf = Node(payload=payload)
    child: Node[T] = Node(children=FrozenDict({method: leaf}))
    return _construct_sub_tree(pattern, child)


def _construct_sub_tree[T](pattern: str, child: Node[T]) -> Node[T]:
    """construct sub tree for existing node on pattern"""
    if not pattern.startswith("/"):
        msg = f"pattern must start with '/', provided {pattern=}"
        raise ConfigurationError(msg)
    segments = _segments(pattern)

    for i, seg in reversed(list(enumerate(segments))):
        if seg == CATCHALL:
            if i != len(segments) - 1:
                msg = f"'*' must be the last segment, provided {pattern=}"
                raise ConfigurationError(msg)
            child = Node(catchall=child)
        elif seg.startswith(":"):
            name = seg[1:]
            if not name:
                msg = f"capture segment needs a name, provided {pattern=}"
                raise ConfigurationError(msg)
            child = Node(wildcard=WildCardNode(name=name, child=child))
        else:
            child = Node(children=FrozenDict({seg: child}))

    return child


def _merge_trees[T](tree1: Node[T], tree2: Node[T]) -> Node[T]:
    """merge tree2 into tree1, tree2's payloads win"""
    payload = tree2.payload if tree2.payload is not None else tree1.payload

    if tree1.wildcard is not None and tree2.wildcard is not None:
        if tree1.wildcard.name != tree2.wildcard.name:
            msg = (
                "nodes have conflicting wildcards: "
                f":{tree1.wildcard.name} and :{tree2.wildcard.name}"
            )
            raise ConfigurationError(msg)
        wildcard: WildCardNode[T] | None = WildCardNode(
            name=tree1.wildcard.name,
            child=_merge_trees(tree1.wildcard.child, tree2.wildcard.child),
        )
    else:
        wildcard = tree1.wildcard or tree2.wildcard

    if tree1.catchall is not None and tree2.catchall is not None:
        catchall: Node[T] | None = _merge_trees(tree1.catchall, tree2.catchall)
    else:
        catchall = tree1.catchall or tree2.catchall

    tree1_keys = set(tree1.children.keys())
    tree2_keys = set(tree2.children.keys())
    unique_tree1_keys = tree1_keys.difference(tree2_keys)
    unique_tree2_keys = tree2_keys.difference(tree1_keys)
    common_keys = tree1_keys.intersection(tree2_keys)
    children: FrozenDict[str | LeafKey, Node[T]] = FrozenDict(
        {k: tree1.children[k] for k in unique_tree1_keys}
        | {k: tree2.children[k] for k in unique_tree2_keys}
        | {k: _merge_trees(tree1.children[k], tree2.children[k]) for k in common_keys}
    )

    return Node(
        payload=payload,
        children=children,
        wildcard=wildcard,
        catchall=catchall,
    )


def collect_routes[T](tree: Node[T]) -> list[tuple[LeafKey, str, T]]:
    """Walk the trie, returning (method, pattern, payload) for every leaf."""
    routes: list[tuple[LeafKey, str, T]] = []
    _collect_routes(tree, [], routes)
    return routes


def _collect_routes[T](
    node: Node[T], parts: list[str], routes: list[tuple[LeafKey, str, T]]
) -> None:
    for key, child in node.children.items():
        if isinstance(key, LeafKey):
            if child.payload is not None:
                routes.append((key, "/" + "/".join(parts), child.payload))
        else:
            _collect_routes(child, [*parts, key], routes)

    if node.wildcard is not None:
        _collect_routes(node.wildcard.child, [*parts, ":" + node.wildcard.name], routes)

    if node.catchall is not None:
        _collect_routes(node.catchall, [*parts, CATCHALL], routes)
