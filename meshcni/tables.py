"""Rows listed by the command-line client and a plain borderless table renderer."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import ClassVar, Iterable, Union


@dataclass
class IpId:
    ip: str
    id: int

    headers: ClassVar[tuple[str, ...]] = ("IP", "ID")

    def _cells(self) -> list[str]:
        return [self.ip, str(self.id)]


@dataclass
class ServiceWithEndpoints:
    service_endpoint: str
    protocol: str
    endpoints: list[str] = field(default_factory=list)

    headers: ClassVar[tuple[str, ...]] = (
        "SERVICE_ENDPOINT",
        "PROTOCOL",
        "BACKEND_ENDPOINTS",
    )

    def _cells(self) -> list[str]:
        endpoints = "".join(f"{ep}\n" for ep in self.endpoints)
        return [self.service_endpoint, self.protocol, endpoints]


@dataclass
class Connection:
    src_ip: str
    src_port: int
    dst_ip: str
    dst_port: int
    proto: str

    headers: ClassVar[tuple[str, ...]] = ("SOURCE", "DESTINATION", "PROTO")

    def _cells(self) -> list[str]:
        return [
            f"{self.src_ip}:{self.src_port}",
            f"{self.dst_ip}:{self.dst_port}",
            self.proto,
        ]


@dataclass
class PolicySet:
    src_id: int
    dst_id: int
    dst_port: int
    proto: str
    action: str

    headers: ClassVar[tuple[str, ...]] = (
        "SOURCE ID",
        "DESTINATION ID",
        "DESTINATION PORT",
        "PROTO",
        "ACTION",
    )

    def _cells(self) -> list[str]:
        return [
            str(self.src_id),
            str(self.dst_id),
            str(self.dst_port),
            self.proto,
            self.action,
        ]


Row = Union[IpId, ServiceWithEndpoints, Connection, PolicySet]


def render_table(rows: Iterable[Row]) -> str:
    """Render rows under their headers, left aligned, one space of padding, no borders.

    Rows must all be of one kind; an empty input renders as an empty string.
    """
    rows = list(rows)
    if not rows:
        return ""
    grid = [list(rows[0].headers)] + [row._cells() for row in rows]
    split = [[cell.split("\n") for cell in record] for record in grid]
    widths = [
        max(len(line) for record in split for line in record[col])
        for col in range(len(split[0]))
    ]
    lines = []
    for record in split:
        height = max(len(cell) for cell in record)
        for index in range(height):
            lines.append(
                "".join(
                    " " + (cell[index] if index < len(cell) else "").ljust(width) + " "
                    for cell, width in zip(record, widths)
                )
            )
    return "\n".join(lines)