import hashlib
from typing import Iterable, List, Sequence


def allocation_leaf(address: str, amount: int) -> str:
    """Leaf hash committing to an (address, amount) pair."""
    return hashlib.sha3_256(f"{address.lower()}:{int(amount)}".encode()).hexdigest()


def hash_pair(hash1: str, hash2: str) -> str:
    # Sort hashes so proofs need no left/right markers
    if hash1 > hash2:
        hash1, hash2 = hash2, hash1
    return hashlib.sha3_256(bytes.fromhex(hash1) + bytes.fromhex(hash2)).hexdigest()


class MerkleTree:
    """
    Merkle tree over pre-hashed leaves (hex strings).

    Odd levels duplicate their last hash. Leaves are sorted before building so
    the root does not depend on the order allocations were listed in.
    """

    def __init__(self, leaves: Iterable[str]):
        self.leaves = sorted(set(leaves))
        if not self.leaves:
            raise ValueError("Merkle tree requires at least one leaf.")
        self.tree = self._build_tree(self.leaves)
        self.root = self.tree[-1][0]

    @classmethod
    def from_allocations(cls, allocations: Iterable[Sequence]) -> "MerkleTree":
        return cls(allocation_leaf(address, amount) for address, amount in allocations)

    def _build_tree(self, leaves: List[str]) -> List[List[str]]:
        tree = [leaves]
        current_level = leaves
        while len(current_level) > 1:
            next_level = []
            for i in range(0, len(current_level), 2):
                left = current_level[i]
                right = current_level[i + 1] if i + 1 < len(current_level) else left
                next_level.append(hash_pair(left, right))
            tree.append(next_level)
            current_level = next_level
        return tree

    def proof_for(self, leaf: str) -> List[str]:
        if leaf not in self.leaves:
            raise ValueError("Leaf not found in the Merkle tree.")

        proof = []
        index = self.leaves.index(leaf)
        for level in self.tree[:-1]:
            sibling_index = index + 1 if index % 2 == 0 else index - 1
            # Unpaired last node is hashed with itself
            proof.append(level[sibling_index] if sibling_index < len(level) else level[index])
            index //= 2
        return proof


def verify_merkle_proof(leaf: str, root: str, proof: Sequence[str]) -> bool:
    if not root:
        return False
    try:
        current = leaf
        for sibling in proof:
            current = hash_pair(current, sibling)
    except (TypeError, ValueError):
        return False
    return current == root
