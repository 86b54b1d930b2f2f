"""Ingestion data models."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

UNTITLED = "Untitled Product"


@dataclass(frozen=True, slots=True)
class IncomingRecord:
    identifier: str | None
    name: str | None = None
    price: str | None = None
    line: str | None = None
    category_path: str | None = None
    inventory: str | None = None
    status: str | None = None
    item_type: str | None = None
    description: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def title(self) -> str:
        return self.name or self.identifier or UNTITLED

    @property
    def label(self) -> str:
        """Identifier used in logs and error records."""
        return self.identifier or self.name or "Unknown"

    def attribute(self, key: str) -> str:
        value = self.attributes.get(key)
        return str(value).strip() if value not in (None, "") else ""


@dataclass(frozen=True, slots=True)
class RemoteVariant:
    id: str | None
    sku: str | None
    price: str | None
    inventory_quantity: int | None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "RemoteVariant":
        variant_id = data.get("id")
        return cls(
            id=str(variant_id) if variant_id is not None else None,
            sku=data.get("sku") or None,
            price=data.get("price"),
            inventory_quantity=data.get("inventory_quantity"),
        )


@dataclass(frozen=True, slots=True)
class RemoteRecord:
    id: str
    title: str
    status: str | None
    variants: tuple[RemoteVariant, ...] = ()

    @property
    def primary_variant(self) -> RemoteVariant | None:
        return self.variants[0] if self.variants else None

    @classmethod
    def from_api(cls, data: Mapping[str, Any]) -> "RemoteRecord":
        return cls(
            id=str(data["id"]),
            title=data.get("title") or "",
            status=data.get("status"),
            variants=tuple(RemoteVariant.from_api(v) for v in data.get("variants") or []),
        )
