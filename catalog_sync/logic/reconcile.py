"""Pairing feed records with remote records and deciding what to do with them."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable

from catalog_sync.ingest.models import IncomingRecord, RemoteRecord
from catalog_sync.logic.eligibility import parse_price

logger = logging.getLogger(__name__)

TITLE = "title"
PRICE = "price"
INVENTORY = "inventory"
STATUS = "status"
TRACKED_FIELDS = frozenset({TITLE, PRICE, INVENTORY, STATUS})

ACTIVE = "active"
DRAFT = "draft"

LEADING_INT_RE = re.compile(r"^\s*([-+]?\d+)")


class Action(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    SKIP = "skip"


@dataclass(frozen=True, slots=True)
class ReconciliationDecision:
    action: Action
    changed_fields: frozenset[str]
    matched_remote: RemoteRecord | None = None


def _key(value: str | None) -> str:
    return (value or "").strip().casefold()


class ReconciliationIndex:
    """Read-only lookups over the remote catalog by variant SKU and by title."""

    def __init__(self, by_identifier: dict[str, RemoteRecord], by_name: dict[str, RemoteRecord]) -> None:
        self._by_identifier = by_identifier
        self._by_name = by_name

    @classmethod
    def build(cls, remote_records: Iterable[RemoteRecord]) -> "ReconciliationIndex":
        by_identifier: dict[str, RemoteRecord] = {}
        by_name: dict[str, RemoteRecord] = {}
        for remote in remote_records:
            name = _key(remote.title)
            if name:
                by_name[name] = remote
            for variant in remote.variants:
                sku = _key(variant.sku)
                if sku:
                    by_identifier[sku] = remote
        logger.info("Built lookup index: %s SKUs, %s titles", len(by_identifier), len(by_name))
        return cls(by_identifier, by_name)

    def lookup(self, record: IncomingRecord) -> RemoteRecord | None:
        identifier = _key(record.identifier)
        if identifier and identifier in self._by_identifier:
            return self._by_identifier[identifier]
        name = _key(record.name or record.identifier)
        if name:
            return self._by_name.get(name)
        return None

    @property
    def identifier_count(self) -> int:
        return len(self._by_identifier)

    @property
    def name_count(self) -> int:
        return len(self._by_name)


def parse_quantity(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, int):
        return value
    match = LEADING_INT_RE.match(str(value))
    return int(match.group(1)) if match else 0


def normalize_status(value: str | None) -> str:
    return ACTIVE if _key(value) == ACTIVE else DRAFT


def _price_or_zero(value: Any) -> Decimal:
    price = parse_price(value)
    return price if price is not None else Decimal(0)


def changed_fields(incoming: IncomingRecord, remote: RemoteRecord) -> frozenset[str]:
    changes: set[str] = set()
    if incoming.title != remote.title:
        changes.add(TITLE)
    variant = remote.primary_variant
    remote_price = variant.price if variant else None
    if _price_or_zero(incoming.price) != _price_or_zero(remote_price):
        changes.add(PRICE)
    remote_inventory = variant.inventory_quantity if variant else None
    if parse_quantity(incoming.inventory) != parse_quantity(remote_inventory):
        changes.add(INVENTORY)
    if normalize_status(incoming.status) != _key(remote.status):
        changes.add(STATUS)
    return frozenset(changes)


def decide(
    incoming: IncomingRecord,
    matched: RemoteRecord | None,
    *,
    enable_updates: bool = True,
) -> ReconciliationDecision:
    if matched is None:
        return ReconciliationDecision(Action.CREATE, TRACKED_FIELDS)
    if not enable_updates:
        return ReconciliationDecision(Action.SKIP, frozenset(), matched)
    changes = changed_fields(incoming, matched)
    if not changes:
        return ReconciliationDecision(Action.SKIP, changes, matched)
    return ReconciliationDecision(Action.UPDATE, changes, matched)
