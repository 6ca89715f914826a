"""Verifier settings.

Settings are read from the environment (``from_env``) or from a JSON-style
mapping (``from_dict``, used by ``sigsum_cli.py --config``):

- ``SIGSUM_COSIGNATURE_MODE`` / ``cosignature_mode``: ``concurrent``
  (default) checks witness cosignatures as concurrent tasks and cancels the
  rest once the quorum holds; ``sequential`` checks them one by one in
  policy order.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from .errors import SIGSUM_E_CONFIG, sigsum_error

COSIGNATURE_MODES = ("concurrent", "sequential")


@dataclass(frozen=True)
class VerifierSettings:
    cosignature_mode: str = "concurrent"

    def __post_init__(self) -> None:
        mode = (self.cosignature_mode or "").strip().lower()
        if mode not in COSIGNATURE_MODES:
            raise sigsum_error(
                SIGSUM_E_CONFIG,
                f"Unknown cosignature mode: {self.cosignature_mode!r} (expected one of {', '.join(COSIGNATURE_MODES)})",
            )
        object.__setattr__(self, "cosignature_mode", mode)

    @property
    def concurrent(self) -> bool:
        return self.cosignature_mode == "concurrent"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "VerifierSettings":
        env = os.environ if environ is None else environ
        return cls(cosignature_mode=env.get("SIGSUM_COSIGNATURE_MODE", "concurrent"))

    @classmethod
    def from_dict(cls, config: Mapping[str, Any], *, base: Optional["VerifierSettings"] = None) -> "VerifierSettings":
        base = base or cls()
        if not isinstance(config, Mapping):
            raise sigsum_error(SIGSUM_E_CONFIG, "verifier config must be a JSON object")
        unknown = set(config) - {"cosignature_mode"}
        if unknown:
            raise sigsum_error(SIGSUM_E_CONFIG, f"Unknown config keys: {', '.join(sorted(unknown))}")
        return cls(cosignature_mode=str(config.get("cosignature_mode", base.cosignature_mode)))
