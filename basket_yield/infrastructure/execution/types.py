"""
Swap executor protocol for type hints.
"""

from __future__ import annotations

from typing import Protocol

from basket_yield.domain.models import SwapResult


class SwapExecutor(Protocol):
    async def execute(self, user_id: int, from_basket_id: int, to_basket_id: int) -> SwapResult:
        ...
