from __future__ import annotations

import copy
import re
from decimal import Decimal, InvalidOperation
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from backend.app.errors import ValuesValidationError

ServiceType = Literal["ClusterIP", "NodePort", "LoadBalancer"]
PullPolicy = Literal["Always", "IfNotPresent", "Never"]

# Friendly names for the exposure modes, accepted on `--set service.type=...`.
SERVICE_TYPE_ALIASES: dict[str, str] = {
    "internal": "ClusterIP",
    "node-exposed": "NodePort",
    "load-balanced": "LoadBalancer",
}
NODE_PORT_SERVICE_TYPES: frozenset[str] = frozenset({"NodePort", "LoadBalancer"})

_QUANTITY_PATTERN = re.compile(r"^([+-]?[0-9.]+(?:[eE][+-]?[0-9]+)?)([a-zA-Z]*)$")
_BINARY_SUFFIXES: dict[str, int] = {
    "Ki": 2**10,
    "Mi": 2**20,
    "Gi": 2**30,
    "Ti": 2**40,
    "Pi": 2**50,
    "Ei": 2**60,
}
_DECIMAL_SUFFIXES: dict[str, Decimal] = {
    "n": Decimal("1e-9"),
    "u": Decimal("1e-6"),
    "m": Decimal("1e-3"),
    "": Decimal(1),
    "k": Decimal("1e3"),
    "M": Decimal("1e6"),
    "G": Decimal("1e9"),
    "T": Decimal("1e12"),
    "P": Decimal("1e15"),
    "E": Decimal("1e18"),
}


def parse_quantity(raw: str | int | float) -> Decimal:
    """Parse a Kubernetes resource quantity (`250m`, `128Mi`, `1.5`, `2G`) to base units."""
    if isinstance(raw, bool):
        raise ValueError(f"invalid quantity: {raw!r}")
    if isinstance(raw, int | float):
        number_text, suffix = str(raw), ""
    else:
        match = _QUANTITY_PATTERN.match(raw.strip())
        if match is None:
            raise ValueError(f"invalid quantity: {raw!r}")
        number_text, suffix = match.groups()
    try:
        number = Decimal(number_text)
    except InvalidOperation as exc:
        raise ValueError(f"invalid quantity: {raw!r}") from exc
    if not number.is_finite():
        raise ValueError(f"quantity must be a finite number: {raw!r}")
    if suffix in _BINARY_SUFFIXES:
        return number * _BINARY_SUFFIXES[suffix]
    if suffix in _DECIMAL_SUFFIXES:
        return number * _DECIMAL_SUFFIXES[suffix]
    raise ValueError(f"unknown quantity suffix {suffix!r} in {raw!r}")


class ImageValues(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    repository: str = Field(min_length=1)
    tag: str = Field(min_length=1)
    pull_policy: PullPolicy = Field(default="IfNotPresent", alias="pullPolicy")

    @field_validator("tag", mode="before")
    @classmethod
    def _coerce_tag(cls, value: Any) -> Any:
        # `--set image.tag=1.0` parses as a float.
        if isinstance(value, int | float) and not isinstance(value, bool):
            return str(value)
        return value


class ServiceValues(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    type: ServiceType = "ClusterIP"
    port: int = Field(ge=1, le=65535)
    target_port: int = Field(ge=1, le=65535, alias="targetPort")
    node_port: int | None = Field(default=None, ge=1, le=65535, alias="nodePort")

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str):
            return SERVICE_TYPE_ALIASES.get(value.strip().lower(), value.strip())
        return value

    @model_validator(mode="after")
    def _check_node_port(self) -> ServiceValues:
        if self.node_port is not None and self.type not in NODE_PORT_SERVICE_TYPES:
            raise ValueError(f"service.nodePort is not allowed for service.type={self.type}")
        return self


class ResourceValues(BaseModel):
    model_config = ConfigDict(extra="forbid")

    requests: dict[str, str | int | float] = Field(default_factory=dict)
    limits: dict[str, str | int | float] = Field(default_factory=dict)

    @model_validator(mode="after")
    def _check_request_within_limit(self) -> ResourceValues:
        for section in (self.requests, self.limits):
            for raw in section.values():
                parse_quantity(raw)
        for name, raw_request in self.requests.items():
            raw_limit = self.limits.get(name)
            if raw_limit is None:
                continue
            if parse_quantity(raw_request) > parse_quantity(raw_limit):
                raise ValueError(
                    f"resources.requests.{name}={raw_request} exceeds "
                    f"resources.limits.{name}={raw_limit}"
                )
        return self


class ChartValues(BaseModel):
    """Schema of the helloworld chart's configuration document."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    replica_count: int = Field(ge=1, alias="replicaCount")
    image: ImageValues
    service: ServiceValues
    resources: ResourceValues = Field(default_factory=ResourceValues)


def validate_chart_values(values: dict[str, Any]) -> dict[str, Any]:
    """Validate a merged configuration document.

    Returns a copy with friendly spellings replaced by their canonical
    Kubernetes form (`service.type=node-exposed` becomes `NodePort`, a numeric
    `image.tag` becomes a string), ready for rendering.
    """
    try:
        validated = ChartValues.model_validate(values)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or '<root>'}: {error['msg']}"
            for error in exc.errors()
        )
        raise ValuesValidationError(f"invalid chart values: {problems}") from exc

    canonical = copy.deepcopy(values)
    canonical["image"]["tag"] = validated.image.tag
    canonical["service"]["type"] = validated.service.type
    return canonical
