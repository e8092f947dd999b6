"""
Conversation memory helpers.

Memory is a plain dict scoped to one conversation. Every helper here returns a
new mapping; the instance passed in is never modified, so a node can't leak
partial writes into the state another tick observes.
"""

import copy
from typing import Any, Dict, Iterable, Optional


def clone_memory(memory: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Deep copy of memory (an empty dict for None)."""
    return copy.deepcopy(memory) if memory else {}


def without_keys(memory: Optional[Dict[str, Any]], keys: Iterable[str]) -> Dict[str, Any]:
    """Copy of memory with the given keys removed (missing keys are ignored)."""
    new_memory = clone_memory(memory)
    for key in keys:
        new_memory.pop(key, None)
    return new_memory
