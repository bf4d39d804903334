# brickhub/app/config.py
from __future__ import annotations

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from brickhub.core.errors import ConfigError


@dataclass(frozen=True)
class HubConfig:
    address: str
    driver: str = "uart"
    transport_params: Dict[str, Any] = field(default_factory=dict)
    cmd_timeout_s: float = 10.0
    liveness_timeout_s: float = 5.0
    poll_interval_s: float = 0.01
    read_chunk_size: int = 4096
    max_packet_size: int = 65536
    early_result_ttl_s: float = 30.0
    connect_settle_s: float = 2.0
    observer_workers: int = 4
    listen_broadcast: bool = True

    def session_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for HubSession (everything except transport selection)."""
        return {
            "address": self.address,
            "cmd_timeout_s": self.cmd_timeout_s,
            "liveness_timeout_s": self.liveness_timeout_s,
            "poll_interval_s": self.poll_interval_s,
            "read_chunk_size": self.read_chunk_size,
            "max_packet_size": self.max_packet_size,
            "early_result_ttl_s": self.early_result_ttl_s,
            "connect_settle_s": self.connect_settle_s,
            "observer_workers": self.observer_workers,
            "listen_broadcast": self.listen_broadcast,
        }

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "HubConfig":
        if not isinstance(data, Mapping):
            raise ConfigError("Hub config must be a mapping.", details={"type": type(data).__name__})

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(
                f"Unknown hub config key(s): {', '.join(map(str, unknown))}",
                hint=f"Valid keys: {', '.join(sorted(known))}",
                details={"unknown": unknown},
            )

        address = data.get("address")
        if not isinstance(address, str) or not address:
            raise ConfigError("Hub config needs a non-empty 'address'.", hint="e.g. address: /dev/rfcomm0")

        params = data.get("transport_params") or {}
        if not isinstance(params, Mapping):
            raise ConfigError("'transport_params' must be a mapping.")

        kwargs = dict(data)
        kwargs["transport_params"] = dict(params)
        try:
            return cls(**kwargs)
        except TypeError as e:
            raise ConfigError("Invalid hub config.", hint=str(e)) from None

    @classmethod
    def from_yaml(cls, path: str | Path) -> "HubConfig":
        full_path = Path(path)
        if not full_path.exists():
            raise ConfigError(f"Missing hub config file: {full_path}", details={"path": str(full_path)})

        try:
            with open(full_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(
                f"Hub config is not valid YAML: {full_path}",
                hint=str(e),
                details={"path": str(full_path)},
            ) from None

        return cls.from_mapping(data)
