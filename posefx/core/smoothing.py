from __future__ import annotations

from typing import Dict, Optional


class FeatureSmoother:
    """Exponential smoothing per named signal. ``alpha=1.0`` passes values through."""

    def __init__(self, alpha: float = 1.0):
        self.alpha = min(1.0, max(1e-3, float(alpha)))
        self.state: Dict[str, float] = {}

    def reset(self) -> None:
        self.state.clear()

    def update(self, name: str, value: Optional[float]) -> Optional[float]:
        if value is None:
            return None
        if name not in self.state or self.alpha >= 1.0:
            self.state[name] = value
            return value
        prev = self.state[name]
        filtered = self.alpha * value + (1.0 - self.alpha) * prev
        self.state[name] = filtered
        return filtered
