# merkle.py
# SHA-256 Merkle tree over the enumerated execution queue.
#
# Guarantees: a step cannot be silently mutated between enumeration and
# dispatch. Steps are committed as leaves when they enter the queue (the
# queue may grow through replanning, so leaves can be appended) and every
# step is re-hashed and checked against its leaf right before dispatch.
#
# stdlib only, zero external dependencies.

import hashlib
import json
from typing import Any


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _sha256(data: str) -> str:
    return hashlib.sha256(data.encode("utf-8")).hexdigest()


def _serialize(step: dict[str, Any]) -> str:
    """Deterministic serialization. sort_keys is non-negotiable."""
    return json.dumps(step, sort_keys=True, ensure_ascii=False, default=str)


# ---------------------------------------------------------------------------
# MerkleTree
# ---------------------------------------------------------------------------

class MerkleTree:
    """
    Binary SHA-256 Merkle tree over a growing list of step dicts.

    Leaf  = SHA256(json.dumps(step, sort_keys=True))
    Node  = SHA256(left_child + right_child)
    Root  = single hash representing every step enumerated so far

    Odd-length layers duplicate the last node before pairing. The root is
    recomputed lazily after appends.
    """

    def __init__(self, steps: list[dict[str, Any]] | None = None) -> None:
        self._leaves: list[str] = []
        self._root: str | None = None
        for step in steps or []:
            self.append(step)

    def append(self, step: dict[str, Any]) -> int:
        """Commit one step as a new leaf. Returns its leaf index."""
        self._leaves.append(_sha256(_serialize(step)))
        self._root = None
        return len(self._leaves) - 1

    # ------------------------------------------------------------------
    # Tree construction
    # ------------------------------------------------------------------

    def _build_tree(self, nodes: list[str]) -> str:
        """Recursively reduce a layer of nodes to a single root hash."""
        if len(nodes) == 1:
            return nodes[0]

        if len(nodes) % 2 != 0:
            nodes = nodes + [nodes[-1]]

        parents = [
            _sha256(nodes[i] + nodes[i + 1])
            for i in range(0, len(nodes), 2)
        ]
        return self._build_tree(parents)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify_leaf(self, index: int, step: dict[str, Any]) -> bool:
        """
        Recompute the leaf hash for `step` and compare against the stored value.

        Returns False on any mismatch or out-of-bounds index.
        """
        if index < 0 or index >= len(self._leaves):
            return False
        return _sha256(_serialize(step)) == self._leaves[index]

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def root(self) -> str:
        """Hex-encoded root hash. Empty string while no step is committed."""
        if not self._leaves:
            return ""
        if self._root is None:
            self._root = self._build_tree(list(self._leaves))
        return self._root

    @property
    def leaves(self) -> list[str]:
        """Shallow copy of leaf hashes in queue order."""
        return list(self._leaves)

    def __len__(self) -> int:
        return len(self._leaves)
