from __future__ import annotations

import os
from dataclasses import dataclass, fields
from typing import Mapping

ENV_PREFIX = "EVENTSCAN_"


@dataclass(slots=True, frozen=True)
class CollectorConfig:
    # chain
    rpc_url: str = "https://polygon-rpc.com/"
    chain_id: int = 137

    # scan window
    lookback_blocks: int = 50        # default range when from_block is omitted
    min_block_range: int = 10
    max_block_range: int = 50        # conservative: provider limits are unknown

    # retries / pacing (seconds)
    max_retries: int = 3
    retry_delay_s: float = 2.0       # linear: delay * attempt
    batch_delay_s: float = 0.5       # between successful windows
    rate_limit_interval_s: float = 0.1
    request_timeout_s: float = 20.0
    scan_timeout_s: float | None = None

    def __post_init__(self) -> None:
        if not self.rpc_url:
            raise ValueError("rpc_url is required")
        if not 1 <= self.min_block_range <= self.max_block_range:
            raise ValueError(
                f"require 1 <= min_block_range ({self.min_block_range}) <= max_block_range ({self.max_block_range})"
            )
        if self.lookback_blocks < 0:
            raise ValueError("lookback_blocks must be >= 0")
        if self.max_retries < 1:
            raise ValueError("max_retries must be >= 1")
        for name in ("retry_delay_s", "batch_delay_s", "rate_limit_interval_s", "request_timeout_s"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be >= 0")
        if self.scan_timeout_s is not None and self.scan_timeout_s <= 0:
            raise ValueError("scan_timeout_s must be > 0")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, prefix: str = ENV_PREFIX) -> "CollectorConfig":
        """Build a config from ``EVENTSCAN_*`` variables; unset ones keep their defaults."""
        env = os.environ if environ is None else environ
        kwargs: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(prefix + f.name.upper())
            if raw is None or raw.strip() == "":
                continue
            raw = raw.strip()
            if f.name == "rpc_url":
                kwargs[f.name] = raw
            elif f.name == "scan_timeout_s":
                kwargs[f.name] = None if raw.lower() in ("none", "off") else float(raw)
            elif f.name.endswith("_s"):
                kwargs[f.name] = float(raw)
            else:
                kwargs[f.name] = int(raw)
        return cls(**kwargs)  # type: ignore[arg-type]
