"""Store configuration."""

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from triple_index.kvstore import KeyValueStore, LmdbKeyValueStore, MemoryKeyValueStore

ENV_PREFIX = "TRIPLE_INDEX_"


@dataclass(frozen=True)
class StoreConfig:
    """Settings for opening a triple store.

    Attributes:
        path: LMDB environment directory, or None for an in-memory store
        map_size: Maximum LMDB environment size in bytes
        table_prefix: Prefix for all table names, so several stores can share one environment
        visibility_delay: Seconds to wait for writes to become readable when
            the backend does not guarantee read-your-writes
        seed: Seed for the default random source used by sampling
    """

    path: Path | None = None
    map_size: int = 1 << 30
    table_prefix: str = ""
    visibility_delay: float = 0.01
    seed: int | None = None

    def __post_init__(self) -> None:
        if self.visibility_delay < 0:
            msg = f"visibility_delay must be >= 0, got {self.visibility_delay}"
            raise ValueError(msg)
        if self.map_size <= 0:
            msg = f"map_size must be positive, got {self.map_size}"
            raise ValueError(msg)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "StoreConfig":
        """Build a configuration from ``TRIPLE_INDEX_*`` environment variables.

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        defaults = cls()
        path = env.get(ENV_PREFIX + "PATH")
        seed = env.get(ENV_PREFIX + "SEED")
        return cls(
            path=Path(path) if path else None,
            map_size=int(env.get(ENV_PREFIX + "MAP_SIZE", defaults.map_size)),
            table_prefix=env.get(ENV_PREFIX + "TABLE_PREFIX", defaults.table_prefix),
            visibility_delay=float(env.get(ENV_PREFIX + "VISIBILITY_DELAY", defaults.visibility_delay)),
            seed=int(seed) if seed else None,
        )

    def open_backend(self) -> KeyValueStore:
        """Open the key-value store this configuration describes."""
        if self.path is None:
            return MemoryKeyValueStore()
        return LmdbKeyValueStore(self.path, map_size=self.map_size)
