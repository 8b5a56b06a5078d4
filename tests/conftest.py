import copy
from typing import Any, Optional

import pytest


BASE_PAYLOAD: dict[str, Any] = {
    "cpu": {"usagePercent": 12.5},
    "gpu": {"usagePercent": 40.0, "temperatureC": 55.0, "powerW": 31.4},
    "memory": {"usedKB": 64_200_000, "totalKB": 128_400_000},
    "temperature": {"systemTemperatureC": 47.0},
    "docker": [
        {
            "id": "abc",
            "image": "vllm/vllm-openai:latest",
            "names": "vllm",
            "ports": "0.0.0.0:8000->8000/tcp",
            "status": "Up 3 hours",
            "cpu": "1.5%",
            "memory": "2.1GiB / 119GiB",
        },
        {
            "id": "dash",
            "image": "dgx_dashboard:latest",
            "names": "dgx_dashboard",
            "ports": "0.0.0.0:8080->8080/tcp",
            "status": "Up 2 days",
        },
    ],
    "nextPollSeconds": 2,
}


def make_payload(
    *,
    gpu: bool = True,
    statuses: Optional[dict[str, str]] = None,
    **overrides: Any,
) -> dict[str, Any]:
    payload = copy.deepcopy(BASE_PAYLOAD)
    if not gpu:
        payload.pop("gpu")
    for container in payload["docker"]:
        if statuses and container["id"] in statuses:
            container["status"] = statuses[container["id"]]
    for key, value in overrides.items():
        payload[key] = value
    return payload


@pytest.fixture
def payload_factory():
    """Build inbound snapshot payloads, optionally without GPU data."""
    return make_payload
