from typing import List

from .utils import sha256


def merkle_root(items: List[str]) -> str:
    if not items:
        return sha256(b"")
    level = items[:]
    while len(level) > 1:
        if len(level) % 2 == 1:
            level.append(level[-1])
        next_level = []
        for i in range(0, len(level), 2):
            combined = (level[i] + level[i + 1]).encode()
            next_level.append(sha256(combined))
        level = next_level
    return level[0]
