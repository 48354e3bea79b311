"""Paper swap executor that fills every basket switch instantly."""

from __future__ import annotations

import asyncio
import logging
import uuid

from basket_yield.domain.models import SwapResult

logger = logging.getLogger(__name__)


class PaperSwapExecutor:
    """Records nothing on-chain; returns a synthetic transaction reference."""

    def __init__(self, latency_ms: int = 0, gas_per_swap: int = 0):
        self.latency_ms = latency_ms
        self.gas_per_swap = gas_per_swap

    async def execute(self, user_id: int, from_basket_id: int, to_basket_id: int) -> SwapResult:
        if from_basket_id == to_basket_id:
            return SwapResult(success=False, error="Source and target basket are identical")
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000.0)
        tx_reference = f"paper-{uuid.uuid4().hex}"
        logger.info(
            "Paper swap for user %s: basket %s -> %s (%s)",
            user_id,
            from_basket_id,
            to_basket_id,
            tx_reference,
        )
        return SwapResult(success=True, tx_reference=tx_reference, gas_used=self.gas_per_swap)
