from functools import lru_cache

from evote.blockchain.client import ChainClient, ChainError


@lru_cache(maxsize=1)
def get_chain() -> ChainClient:
    """FastAPI dependency; tests override it with an in-memory fake."""
    return ChainClient()


__all__ = ["ChainClient", "ChainError", "get_chain"]
