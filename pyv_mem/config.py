from __future__ import annotations
from dataclasses import dataclass, field, fields, replace
from enum import Enum
from pathlib import Path
from typing import Any, Dict
import yaml

from .errors import FaultKind, simulator_exception


class ReplacementPolicyKind(str, Enum):
    """Victim selection algorithm of a cache."""
    RAND = "RAND"
    LRU = "LRU"
    LFU = "LFU"

    def __str__(self) -> str:
        return self.value


class WritePolicy(str, Enum):
    WRITE_THROUGH = "write-through"
    WRITE_BACK = "write-back"

    def __str__(self) -> str:
        return self.value


_POLICY_ALIASES = {
    "rand": ReplacementPolicyKind.RAND,
    "random": ReplacementPolicyKind.RAND,
    "lru": ReplacementPolicyKind.LRU,
    "lfu": ReplacementPolicyKind.LFU,
}

_WRITE_POLICY_ALIASES = {
    "write-through": WritePolicy.WRITE_THROUGH,
    "write_through": WritePolicy.WRITE_THROUGH,
    "through": WritePolicy.WRITE_THROUGH,
    "write-back": WritePolicy.WRITE_BACK,
    "write_back": WritePolicy.WRITE_BACK,
    "back": WritePolicy.WRITE_BACK,
}


def _coerce_enum(value, enum_cls, aliases: Dict[str, Enum], what: str):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str) and value.strip().lower() in aliases:
        return aliases[value.strip().lower()]
    raise simulator_exception(
        FaultKind.INPUT, f"Unknown {what}: {value!r}",
        f"Supported values: {', '.join(str(v) for v in enum_cls)}")


@dataclass(frozen=True)
class CacheConfig:
    """Geometry and policy of one cache instance. Immutable once built."""
    name: str = "Cache"
    enabled: bool = True
    set_count: int = 1
    associativity: int = 1
    block_size: int = 4  # bytes
    replacement_policy: ReplacementPolicyKind = ReplacementPolicyKind.RAND
    write_policy: WritePolicy = WritePolicy.WRITE_BACK
    write_allocate: bool = True  # write-through only
    hit_latency_cycles: int = 1
    miss_latency_cycles: int = 10

    def __post_init__(self):
        # Enum coercion happens even for a disabled cache so the YAML
        # spelling is always checked.
        object.__setattr__(self, "replacement_policy", _coerce_enum(
            self.replacement_policy, ReplacementPolicyKind, _POLICY_ALIASES,
            "replacement policy"))
        object.__setattr__(self, "write_policy", _coerce_enum(
            self.write_policy, WritePolicy, _WRITE_POLICY_ALIASES, "write policy"))

        if not self.enabled:
            return

        for name in ("set_count", "associativity", "block_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 1:
                raise simulator_exception(
                    FaultKind.INPUT, f"Invalid cache configuration ({self.name})",
                    f"{name} must be a positive integer, got {value!r}")
        for name in ("hit_latency_cycles", "miss_latency_cycles"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                raise simulator_exception(
                    FaultKind.INPUT, f"Invalid cache configuration ({self.name})",
                    f"{name} must be a non-negative integer, got {value!r}")

    @property
    def way_count(self) -> int:
        return self.set_count * self.associativity

    @property
    def size_bytes(self) -> int:
        return self.way_count * self.block_size

    @property
    def is_write_back(self) -> bool:
        return self.write_policy is WritePolicy.WRITE_BACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            f.name: (str(getattr(self, f.name)) if isinstance(getattr(self, f.name), Enum)
                     else getattr(self, f.name))
            for f in fields(self)
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], name: str | None = None) -> CacheConfig:
        """Builds a CacheConfig from a YAML mapping, rejecting unknown keys."""
        if not isinstance(data, dict):
            raise simulator_exception(
                FaultKind.INPUT, "Cache configuration must be a mapping",
                f"got {type(data).__name__}")
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise simulator_exception(
                FaultKind.INPUT, "Unknown cache configuration keys",
                ", ".join(unknown))
        kwargs = dict(data)
        if name is not None:
            kwargs.setdefault("name", name)
        return cls(**kwargs)


CACHE_SECTIONS = ("icache", "dcache", "l2cache")


@dataclass
class SimConfig:
    """Memory hierarchy simulator configuration."""
    # Trace to replay
    trace: str = ""

    # Config file
    config_file: str = ""

    # Reporting
    report_dir: str = "out/default_run"
    log_level: str = "INFO"

    # Backing memory
    memory_size_bytes: int = 64 * 1024

    # Caches
    icache: CacheConfig = field(default_factory=lambda: CacheConfig(name="ICache", enabled=False))
    dcache: CacheConfig = field(default_factory=lambda: CacheConfig(
        name="DCache", set_count=4, associativity=2, block_size=16,
        replacement_policy=ReplacementPolicyKind.LRU))
    l2cache: CacheConfig = field(default_factory=lambda: CacheConfig(name="L2Cache", enabled=False))

    def update_from_yaml(self, yaml_path: str):
        """Updates config fields from a YAML file."""
        with open(yaml_path, 'r') as f:
            try:
                yaml_config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise simulator_exception(
                    FaultKind.INPUT, f"Cannot parse config file {yaml_path}", str(e)) from e
        if yaml_config is None:
            return
        if not isinstance(yaml_config, dict):
            raise simulator_exception(
                FaultKind.INPUT, f"Config file {yaml_path} must contain a mapping")
        for key, value in yaml_config.items():
            if key in CACHE_SECTIONS:
                if isinstance(value, dict):
                    # Keys missing from the YAML keep their current values
                    value = {**getattr(self, key).to_dict(), **value}
                setattr(self, key, CacheConfig.from_dict(value))
            elif hasattr(self, key):
                setattr(self, key, value)

    def override_cache(self, section: str, **changes) -> None:
        """Replaces selected fields of one cache config, re-running validation."""
        setattr(self, section, replace(getattr(self, section), **changes))

    @classmethod
    def from_args(cls, args) -> SimConfig:
        """Factory method to create a SimConfig from parsed argparse arguments."""
        config = cls()

        # 1. Load from YAML config file if provided
        if hasattr(args, 'config') and args.config:
            config.config_file = args.config
            if not Path(config.config_file).exists():
                raise simulator_exception(
                    FaultKind.INPUT, f"Config file {config.config_file} not found")
            config.update_from_yaml(config.config_file)

        # 2. Override with command-line arguments
        arg_dict = vars(args)
        for key, value in arg_dict.items():
            if value is None or key in CACHE_SECTIONS or not hasattr(config, key):
                continue
            setattr(config, key, value)

        # 3. Per-cache overrides, e.g. dcache_replacement_policy
        for section in CACHE_SECTIONS:
            prefix = f"{section}_"
            changes = {
                key[len(prefix):]: value for key, value in arg_dict.items()
                if key.startswith(prefix) and value is not None
            }
            if changes:
                config.override_cache(section, **changes)
        return config
