"""Conversion between environment mappings and ``KEY=VALUE`` lists."""

from __future__ import annotations

import os
from collections.abc import Mapping, Sequence

__all__ = [
    "current_environment_as_list",
    "envp_to_mapping",
    "mapping_to_envp",
]


def mapping_to_envp(mapping: Mapping[str, str]) -> list[str]:
    """Format a mapping as ``KEY=VALUE`` strings, sorted by key."""
    return [f"{key}={mapping[key]}" for key in sorted(mapping)]


def current_environment_as_list() -> list[str] | None:
    """Return this process's environment in envp form.

    Callers start from this list, append or override entries, and pass the
    result to ``Executor.run`` as ``envp``.

    Returns:
        Sorted ``KEY=VALUE`` strings, or None if no environment is available
    """
    environ = getattr(os, "environ", None)
    if environ is None:
        return None
    return mapping_to_envp(dict(environ))


def envp_to_mapping(envp: Sequence[str] | None) -> dict[str, str] | None:
    """Parse envp strings into the mapping handed to the OS.

    Each entry is split on its first ``=`` so values may contain ``=``.
    Later entries override earlier ones with the same key.

    Args:
        envp: ``KEY=VALUE`` strings, or None to inherit the caller's environment

    Returns:
        Environment mapping, or None when ``envp`` is None

    Raises:
        ValueError: If an entry has no ``=`` or an empty key
    """
    if envp is None:
        return None
    if isinstance(envp, str):
        raise ValueError("envp must be a sequence of KEY=VALUE strings, not a str")

    env: dict[str, str] = {}
    for entry in envp:
        key, sep, value = entry.partition("=")
        if not sep or not key:
            raise ValueError(f"Malformed environment entry: {entry!r}")
        env[key] = value
    return env
