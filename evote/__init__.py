"""E-voting API backed by a smart contract and a MongoDB mirror."""

__version__ = "0.1.0"
