"""Collision resolution for artifact keys and relocated channel names."""

from __future__ import annotations

import random
import re
from collections.abc import Callable, Iterable

from channel_archive.pipeline.logger import logger

ARTIFACT_SUFFIX = ".html"
RANDOM_SUFFIX_MAX = 10_000

_UNSAFE_CHARS = re.compile(r"[^a-z0-9-]", re.IGNORECASE)


def sanitize_name(name: str) -> str:
    """Reduce a channel name to lowercase letters, digits and hyphens."""
    return _UNSAFE_CHARS.sub("-", name).lower()


def resolve_unique_key(
    channel_name: str,
    list_existing_keys: Callable[[str], Iterable[str]],
) -> str:
    """Turn a channel name into a storage key no existing object uses.

    ``name.html`` when free, otherwise ``name-<N+1>.html`` where N is the
    largest numeric suffix already taken (gaps are not reused). If listing
    fails, a random suffix is used instead of failing the upload.

    Args:
        channel_name: Human-readable channel name
        list_existing_keys: Returns existing keys starting with a prefix

    Returns:
        Storage key for the new artifact
    """
    base_name = sanitize_name(channel_name)
    base_key = f"{base_name}{ARTIFACT_SUFFIX}"

    try:
        existing = [
            key for key in list_existing_keys(base_name) if key.endswith(ARTIFACT_SUFFIX)
        ]
    except Exception as e:
        logger.warning(f"Could not list existing artifacts for {base_name}: {e}")
        return f"{base_name}-{random.randrange(RANDOM_SUFFIX_MAX)}{ARTIFACT_SUFFIX}"

    if base_key not in existing:
        return base_key

    counter_re = re.compile(rf"^{re.escape(base_name)}-(\d+){re.escape(ARTIFACT_SUFFIX)}$")
    max_counter = 0
    for key in existing:
        match = counter_re.match(key)
        if match:
            max_counter = max(max_counter, int(match.group(1)))

    return f"{base_name}-{max_counter + 1}{ARTIFACT_SUFFIX}"


def resolve_unique_channel_name(desired_name: str, sibling_names: Iterable[str]) -> str:
    """Return desired_name, or the first ``desired_name-N`` no sibling uses."""
    taken = set(sibling_names)
    if desired_name not in taken:
        return desired_name

    counter = 1
    while f"{desired_name}-{counter}" in taken:
        counter += 1
    return f"{desired_name}-{counter}"
