"""Wire schema for telemetry snapshots and container commands.

Inbound frames are decoded into frozen dataclasses at the transport boundary
so nothing downstream touches raw JSON. ``TelemetrySnapshot.gpu`` is either a
``GpuReading`` or ``None``; consumers branch on that explicitly.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Mapping, Optional, Union

from . import constants


class ProtocolError(ValueError):
    """Raised when an inbound frame cannot be decoded into a snapshot."""


class DockerCommand(str, Enum):
    """Outbound container control commands."""

    START = "docker-start"
    STOP = "docker-stop"
    RESTART = "docker-restart"


@dataclass(frozen=True, slots=True)
class CpuReading:
    usage_percent: float


@dataclass(frozen=True, slots=True)
class GpuReading:
    usage_percent: float
    temperature_c: float
    power_w: float


@dataclass(frozen=True, slots=True)
class MemoryReading:
    used_kb: int
    total_kb: int

    @property
    def used_gb(self) -> float:
        return memory_kb_to_gb(self.used_kb)

    @property
    def total_gb(self) -> float:
        return memory_kb_to_gb(self.total_kb)


@dataclass(frozen=True, slots=True)
class TemperatureReading:
    system_temperature_c: float


@dataclass(frozen=True, slots=True)
class ContainerState:
    """One row of ``docker ps`` output as reported by the server."""

    id: str
    image: str
    names: str
    ports: str
    status: str
    cpu: Optional[str] = None
    memory: Optional[str] = None

    @property
    def is_running(self) -> bool:
        # Docker reports e.g. "Up 3 hours"; anything else counts as stopped.
        return self.status.lower().startswith("up ")

    @property
    def is_protected(self) -> bool:
        return self.is_protected_by(constants.PROTECTED_CONTAINER_MARKER)

    def is_protected_by(self, marker: str) -> bool:
        if not marker:
            return False
        return marker in self.names or marker in self.image


@dataclass(frozen=True, slots=True)
class TelemetrySnapshot:
    cpu: CpuReading
    gpu: Optional[GpuReading]
    memory: MemoryReading
    temperature: TemperatureReading
    docker: tuple[ContainerState, ...]
    next_poll_seconds: float

    @property
    def gpu_available(self) -> bool:
        return self.gpu is not None

    def container(self, container_id: str) -> Optional[ContainerState]:
        for container in self.docker:
            if container.id == container_id:
                return container
        return None


def memory_kb_to_gb(kb: Union[int, float]) -> float:
    """Convert kilobytes to decimal gigabytes."""

    return kb / constants.KB_PER_GB


def round_half_away_from_zero(value: float, digits: int = 1) -> float:
    quantum = Decimal(1).scaleb(-digits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def encode_command(command: Union[DockerCommand, str], container_id: str) -> dict[str, str]:
    """Build the outbound command frame for ``container_id``."""

    try:
        resolved = DockerCommand(command)
    except ValueError:
        raise ValueError(f"Unsupported docker command: {command!r}") from None
    if not container_id:
        raise ValueError("Container id cannot be empty")
    return {"command": resolved.value, "id": container_id}


def decode_snapshot(raw: Union[str, bytes, Mapping[str, Any]]) -> TelemetrySnapshot:
    """Decode one inbound frame.

    Raises:
        ProtocolError: If the frame is not JSON, is not an object, or misses
            a required field.
    """

    if isinstance(raw, (str, bytes, bytearray)):
        try:
            payload = json.loads(raw)
        except (ValueError, RecursionError) as exc:
            # ValueError covers JSONDecodeError, UnicodeDecodeError and the int digit limit
            raise ProtocolError(f"Frame is not valid JSON: {exc}") from exc
    else:
        payload = raw

    if not isinstance(payload, Mapping):
        raise ProtocolError("Snapshot must be a JSON object")

    cpu = _require_section(payload, "cpu")
    memory = _require_section(payload, "memory")
    temperature = _require_section(payload, "temperature")

    gpu_payload = payload.get("gpu")
    gpu: Optional[GpuReading] = None
    if gpu_payload is not None:
        if not isinstance(gpu_payload, Mapping):
            raise ProtocolError("Field 'gpu' must be an object")
        gpu = GpuReading(
            usage_percent=_require_number(gpu_payload, "usagePercent", "gpu"),
            temperature_c=_require_number(gpu_payload, "temperatureC", "gpu"),
            power_w=_require_number(gpu_payload, "powerW", "gpu"),
        )

    docker_payload = payload.get("docker")
    if docker_payload is None:
        docker: tuple[ContainerState, ...] = ()
    elif isinstance(docker_payload, list):
        docker = tuple(_decode_container(item, index) for index, item in enumerate(docker_payload))
    else:
        raise ProtocolError("Field 'docker' must be a list")

    return TelemetrySnapshot(
        cpu=CpuReading(usage_percent=_require_number(cpu, "usagePercent", "cpu")),
        gpu=gpu,
        memory=MemoryReading(
            used_kb=int(_require_number(memory, "usedKB", "memory")),
            total_kb=int(_require_number(memory, "totalKB", "memory")),
        ),
        temperature=TemperatureReading(
            system_temperature_c=_require_number(
                temperature, "systemTemperatureC", "temperature"
            )
        ),
        docker=docker,
        next_poll_seconds=_require_number(payload, "nextPollSeconds", None),
    )


def _require_section(payload: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    value = payload.get(name)
    if not isinstance(value, Mapping):
        raise ProtocolError(f"Missing or invalid section '{name}'")
    return value


def _require_number(section: Mapping[str, Any], key: str, parent: Optional[str]) -> float:
    value = section.get(key)
    label = f"{parent}.{key}" if parent else key
    # bool is an int subclass but never a valid reading
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ProtocolError(f"Missing or non-numeric field '{label}'")
    # json.loads accepts Infinity, NaN, 1e400 and integers too large for a float
    try:
        number = float(value)
    except OverflowError:
        number = math.inf
    if not math.isfinite(number):
        raise ProtocolError(f"Non-finite value for field '{label}'")
    return number


def _decode_container(item: Any, index: int) -> ContainerState:
    if not isinstance(item, Mapping):
        raise ProtocolError(f"docker[{index}] must be an object")

    def text(key: str) -> str:
        value = item.get(key)
        if not isinstance(value, str):
            raise ProtocolError(f"Missing or non-string field 'docker[{index}].{key}'")
        return value

    def optional_text(key: str) -> Optional[str]:
        value = item.get(key)
        return value if isinstance(value, str) else None

    return ContainerState(
        id=text("id"),
        image=text("image"),
        names=text("names"),
        ports=text("ports"),
        status=text("status"),
        cpu=optional_text("cpu"),
        memory=optional_text("memory"),
    )
