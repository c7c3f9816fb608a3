"""Errors raised while configuring or running a Cpk sample search."""

from __future__ import annotations


class CpkSynthError(Exception):
    pass


class InvalidInput(CpkSynthError, ValueError):
    """Malformed or out-of-domain run parameters."""


class TargetUnreachable(CpkSynthError, ValueError):
    """The target Cpk cannot be realised inside the allowed value range."""

    def __init__(self, target_cpk: float, min_value: float, max_value: float) -> None:
        self.target_cpk = target_cpk
        self.min_value = min_value
        self.max_value = max_value
        self.range_width = max_value - min_value
        super().__init__(
            f"Target Cpk {target_cpk:g} is not reachable with values limited to "
            f"[{min_value:g}, {max_value:g}] (range width {self.range_width:g})."
        )


class NoSampleProduced(CpkSynthError, RuntimeError):
    """A finished run never recorded a candidate sample."""
