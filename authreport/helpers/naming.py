"""Type-name and path normalization helpers shared across the analysis."""

from __future__ import annotations

import re


def simple_name(type_name: str) -> str:
    """Last segment of a dotted or internal type name, without outer classes.

    >>> simple_name("com/acme/web/ApiKeyAuthFilter")
    'ApiKeyAuthFilter'
    >>> simple_name("com.acme.Config$Inner")
    'Inner'
    """
    name = type_name.replace("/", ".").rsplit(".", 1)[-1]
    return name.rsplit("$", 1)[-1]


def squash(text: str) -> str:
    """Lowercase and drop separators, so ``API_KEY`` and ``apiKey`` compare equal."""
    return re.sub(r"[^a-z0-9]", "", text.lower())


def normalize_path(path: str) -> str:
    """Normalize an endpoint path: leading slash, no doubled or trailing slashes."""
    path = re.sub(r"/{2,}", "/", "/" + path.strip())
    if len(path) > 1:
        path = path.rstrip("/")
    return path
