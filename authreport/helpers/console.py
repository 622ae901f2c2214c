"""Consoles shared by the commands, and fitting report cells to them."""

from __future__ import annotations

from rich.console import Console

console = Console()
# stdout carries reports; log records go to stderr.
err_console = Console(stderr=True)

ELLIPSIS = "..."


def shorten_path(path: str, max_len: int) -> str:
    """Fit an endpoint path into *max_len* characters.

    Middle segments collapse into ``...`` so the first segment and as many
    trailing segments as fit stay readable:
    ``/api/v1/orgs/{org}/members`` → ``/api/.../{org}/members``. A path
    with nothing left to collapse is cut at the end instead.
    """
    if len(path) <= max_len:
        return path
    segments = path.strip("/").split("/")
    head = "/" + segments[0]
    tail: list[str] = []
    for segment in reversed(segments[1:]):
        candidate = "/".join([head, ELLIPSIS, segment, *tail])
        if len(candidate) > max_len:
            break
        tail.insert(0, segment)
    if tail and len(tail) < len(segments) - 1:
        return "/".join([head, ELLIPSIS, *tail])
    return path[: max_len - len(ELLIPSIS)] + ELLIPSIS
