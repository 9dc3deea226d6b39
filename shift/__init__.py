"""SHIFT: a chat gateway that drives Solana wallet operations through tool-calling LLMs."""

__version__ = "0.1.0"
