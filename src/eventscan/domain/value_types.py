from __future__ import annotations
from typing import NewType, Literal

Address = NewType("Address", str)   # 0x-prefixed, 20 bytes
Topic0  = NewType("Topic0", str)    # 66-char 0x-hash
EventName = Literal[
    "PositionOpened",
    "PositionClosed",
    "PositionLiquidated",
    "FundingUpdated",
    "FundingPaid",
    "TradingFeeCollected",
    "CollateralDeposited",
    "CollateralWithdrawn",
]
