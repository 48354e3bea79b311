"""
Recommendation backend protocol for type hints.
"""

from __future__ import annotations

from typing import Protocol


class RecommendationBackend(Protocol):
    async def generate(self, prompt: str) -> str:
        """Return free text; no schema guarantee on the output."""
        ...
