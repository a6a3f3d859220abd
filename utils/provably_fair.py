"""
Provably Fair Utilities for the Pin Wheel draw
Implements SHA-256 based provably fair index selection
"""

import secrets
import hashlib
from typing import Dict, Any


def _hash(server_seed: str, client_seed: str, nonce: str) -> str:
    combined = f"{server_seed}:{client_seed}:{nonce}"
    return hashlib.sha256(combined.encode()).hexdigest()


def _index_from_hash(proof_hash: str, size: int) -> int:
    # First 16 hex chars = 64 bits, modulo bias is negligible for small sizes
    return int(proof_hash[:16], 16) % size


def generate_draw_proof(window: str, total_entries: int, prize_count: int,
                        server_seed: str = None) -> Dict[str, Any]:
    """
    Pick a winner slot and a prize slot for one draw window.

    Algorithm:
    1. Generate server_seed (64 char hex string using cryptographically secure RNG)
    2. Construct client_seed: "window:total_entries"
    3. Hash "server_seed:client_seed:winner" -> winner index
    4. Hash "server_seed:client_seed:prize" -> prize index

    The two nonces make the winner and prize selections independent.

    Args:
        window: Draw date (YYYY-MM-DD)
        total_entries: Number of entry slots (must be > 0)
        prize_count: Number of prizes in the catalog (must be > 0)
        server_seed: Fixed seed, for verification and tests

    Returns:
        Dictionary containing:
        - winner_index, prize_index
        - server_seed, client_seed
        - proof_hash: winner hash (recorded on the winner row)
        - prize_hash
    """
    if total_entries <= 0 or prize_count <= 0:
        raise ValueError("Draw needs at least one entry and one prize")

    server_seed = server_seed or secrets.token_hex(32)
    client_seed = f"{window}:{total_entries}"

    winner_hash = _hash(server_seed, client_seed, "winner")
    prize_hash = _hash(server_seed, client_seed, "prize")

    return {
        'winner_index': _index_from_hash(winner_hash, total_entries),
        'prize_index': _index_from_hash(prize_hash, prize_count),
        'server_seed': server_seed,
        'client_seed': client_seed,
        'proof_hash': winner_hash,
        'prize_hash': prize_hash,
    }


def verify_draw_proof(server_seed: str, client_seed: str, expected_hash: str,
                      total_entries: int, expected_winner_index: int) -> bool:
    """
    Verify a draw by recomputing the winner hash and index.

    Returns:
        True if verification succeeds, False otherwise
    """
    if total_entries <= 0:
        return False

    computed_hash = _hash(server_seed, client_seed, "winner")
    if computed_hash != expected_hash:
        return False

    return _index_from_hash(computed_hash, total_entries) == expected_winner_index
