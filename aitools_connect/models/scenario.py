"""Scenario definitions and scenario input payloads."""

from dataclasses import dataclass, field
from typing import Literal

type InputKind = Literal["none", "audio", "image", "document", "text"]


@dataclass(frozen=True, kw_only=True)
class Scenario:
    """A single reachability check against one service."""

    id: str
    service: str
    name: str
    description: str
    input_kind: InputKind = "none"

    @property
    def requires_input(self) -> bool:
        return self.input_kind != "none"


@dataclass(frozen=True, kw_only=True)
class InputPayload:
    """Raw input bytes supplied by the operator for a scenario."""

    kind: InputKind
    data: bytes = field(repr=False)
    content_type: str
    file_name: str | None = None

    @property
    def text(self) -> str:
        return self.data.decode("utf-8", errors="replace")
