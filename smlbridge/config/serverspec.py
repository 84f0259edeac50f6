from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable

from smlbridge.runtime.sink import DEFAULT_ROTATE_EVERY, STDOUT_PATH
from smlbridge.source.acquisition import DEFAULT_BAUDRATE

_KNOWN_KEYS = {
    "device",
    "output",
    "single_shot",
    "verbose",
    "baudrate",
    "rotate_every",
    "read_timeout_s",
    "log_file",
}


def _reject_unknown_keys(data: Dict[str, Any], keys: Iterable[str], context: str) -> None:
    unknown = sorted(key for key in data if key not in keys)
    if unknown:
        joined = ", ".join(unknown)
        raise ValueError(f"unknown {context} keys: {joined}")


def _as_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in {"1", "true", "on", "yes"}:
            return True
        if text in {"", "0", "false", "off", "no"}:
            return False
    raise ValueError(f"invalid bool value: {value!r}")


@dataclass(frozen=True)
class ServerSpec:
    device: str | None = None
    output: str = STDOUT_PATH
    single_shot: bool = False
    verbose: bool = False
    baudrate: int = DEFAULT_BAUDRATE
    rotate_every: int = DEFAULT_ROTATE_EVERY
    read_timeout_s: float = 1.0
    log_file: str | None = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerSpec":
        if not isinstance(data, dict):
            raise ValueError("server config must be a mapping")
        _reject_unknown_keys(data, _KNOWN_KEYS, "server config")
        device = data.get("device")
        log_file = data.get("log_file")
        return cls(
            device=str(device) if device is not None else None,
            output=str(data.get("output", STDOUT_PATH)),
            single_shot=_as_bool(data.get("single_shot", False)),
            verbose=_as_bool(data.get("verbose", False)),
            baudrate=int(data.get("baudrate", DEFAULT_BAUDRATE)),
            rotate_every=int(data.get("rotate_every", DEFAULT_ROTATE_EVERY)),
            read_timeout_s=float(data.get("read_timeout_s", 1.0)),
            log_file=str(log_file) if log_file is not None else None,
        )

    def with_overrides(self, **overrides: Any) -> "ServerSpec":
        changes = {key: value for key, value in overrides.items() if value is not None}
        return replace(self, **changes)

    def validate(self) -> None:
        if not self.device:
            raise ValueError("device is required (serial device path or - for stdin)")
        if not self.output:
            raise ValueError("output must be non-empty (path or - for stdout)")
        if self.baudrate <= 0:
            raise ValueError("baudrate must be > 0")
        if self.rotate_every <= 0:
            raise ValueError("rotate_every must be > 0")
        if self.read_timeout_s <= 0:
            raise ValueError("read_timeout_s must be > 0")

    def as_dict(self) -> Dict[str, Any]:
        return {
            "device": self.device,
            "output": self.output,
            "single_shot": self.single_shot,
            "verbose": self.verbose,
            "baudrate": self.baudrate,
            "rotate_every": self.rotate_every,
            "read_timeout_s": self.read_timeout_s,
            "log_file": self.log_file,
        }


def _load_json(path: Path) -> Dict[str, Any]:
    return json.loads(path.read_text(encoding="utf-8"))


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        import yaml
    except ImportError as exc:
        raise RuntimeError("PyYAML is required to load YAML server configs") from exc
    return yaml.safe_load(path.read_text(encoding="utf-8")) or {}


def load_serverspec(path: str | Path) -> ServerSpec:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(path)
    if path.suffix.lower() in {".yaml", ".yml"}:
        data = _load_yaml(path)
    else:
        data = _load_json(path)
    return ServerSpec.from_dict(data)


def save_serverspec(path: str | Path, spec: ServerSpec) -> None:
    path = Path(path)
    data = spec.as_dict()
    if path.suffix.lower() in {".yaml", ".yml"}:
        try:
            import yaml
        except ImportError as exc:
            raise RuntimeError("PyYAML is required to write YAML server configs") from exc
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    else:
        path.write_text(json.dumps(data, indent=2), encoding="utf-8")
