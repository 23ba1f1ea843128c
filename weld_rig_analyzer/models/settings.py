"""Analyzer settings -- every knob that affects scanning and serving.

AnalyzerSettings is one frozen dataclass. It can be:

- Built from the process environment with :meth:`AnalyzerSettings.from_env`
- Overridden field-by-field via ``dataclasses.replace()``
- Serialized to/from a dict for JSON provenance
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date
from pathlib import Path
import os
from typing import Any, Dict, Mapping, Optional

ENV_ROOT_PATH = "EXPERIMENT_ROOT_PATH"
ENV_VALID_DATE_FROM = "EXPERIMENT_VALID_DATE_FROM"
ENV_CACHE_TTL_S = "EXPERIMENT_CACHE_TTL_S"

DEFAULT_VALID_DATE_FROM = date(2025, 7, 1)


@dataclass(frozen=True)
class AnalyzerSettings:
    """Frozen configuration shared by the scanner and the data services.

    Fields
    ------
    root_path : Path or None
        Folder holding one sub-folder per experiment.
    valid_date_from : date
        Experiments dated before this are never indexed.
    cache_ttl_s : float
        Age after which a cached parse is discarded (seconds).
    default_max_points : int
        Point budget used when a channel request gives none.
    log_capped_rows : int
        Number of skipped rows logged individually per load.
    """

    root_path: Optional[Path] = None
    valid_date_from: date = DEFAULT_VALID_DATE_FROM
    cache_ttl_s: float = 600.0
    default_max_points: int = 2000
    log_capped_rows: int = 5

    def __post_init__(self) -> None:
        if self.cache_ttl_s <= 0:
            raise ValueError(f"cache_ttl_s must be > 0, got {self.cache_ttl_s}")
        if self.default_max_points < 1:
            raise ValueError(f"default_max_points must be >= 1, got {self.default_max_points}")
        if self.root_path is not None and not isinstance(self.root_path, Path):
            object.__setattr__(self, "root_path", Path(self.root_path))

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @classmethod
    def from_env(
        cls,
        environ: Optional[Mapping[str, str]] = None,
        **overrides: Any,
    ) -> AnalyzerSettings:
        """Build settings from environment variables with optional overrides.

        Recognised variables: ``EXPERIMENT_ROOT_PATH``,
        ``EXPERIMENT_VALID_DATE_FROM`` (YYYY-MM-DD) and
        ``EXPERIMENT_CACHE_TTL_S``. Keyword overrides win over the environment.
        """
        env = os.environ if environ is None else environ
        base: Dict[str, Any] = {}
        root = env.get(ENV_ROOT_PATH, "").strip()
        if root:
            base["root_path"] = Path(root).expanduser()
        vdf = env.get(ENV_VALID_DATE_FROM, "").strip()
        if vdf:
            try:
                base["valid_date_from"] = date.fromisoformat(vdf)
            except ValueError:
                raise ValueError(f"{ENV_VALID_DATE_FROM} is not YYYY-MM-DD: '{vdf}'") from None
        ttl = env.get(ENV_CACHE_TTL_S, "").strip()
        if ttl:
            try:
                base["cache_ttl_s"] = float(ttl)
            except ValueError:
                raise ValueError(f"{ENV_CACHE_TTL_S} is not a number: '{ttl}'") from None
        base.update(overrides)
        return cls(**base)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Return a JSON-friendly dict (paths and dates become strings)."""
        d = asdict(self)
        d["root_path"] = None if self.root_path is None else str(self.root_path)
        d["valid_date_from"] = self.valid_date_from.isoformat()
        return d

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> AnalyzerSettings:
        d = dict(d)
        if d.get("root_path") is not None:
            d["root_path"] = Path(d["root_path"])
        if isinstance(d.get("valid_date_from"), str):
            d["valid_date_from"] = date.fromisoformat(d["valid_date_from"])
        return cls(**d)
