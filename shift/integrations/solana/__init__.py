"""Solana agent kit and the tools it exposes to the model."""
