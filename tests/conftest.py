import itertools
import logging
from decimal import Decimal
from logging.handlers import RotatingFileHandler

import pytest

from catalog_sync.config import SyncSettings
from catalog_sync.ingest.models import IncomingRecord, RemoteRecord, RemoteVariant
from catalog_sync.ingest.payload import ProductPayloadBuilder
from catalog_sync.logic.taxonomy import TaxonomyResolver, load_vocabulary


def make_record(identifier="QG-100", **overrides):
    values = {
        "identifier": identifier,
        "name": f"14K Gold Ring {identifier}",
        "price": "1500.00",
        "line": "Ring",
        "category_path": "\\Jewelry\\Rings\\Fashion Rings",
        "inventory": "5",
        "status": "Active",
        "item_type": "Ring",
        "description": f"14K Gold Ring {identifier}",
    }
    values.update(overrides)
    return IncomingRecord(**values)


def make_remote(remote_id="1001", title="14K Gold Ring QG-100", sku="QG-100", price="1500.00", inventory=5, status="active"):
    return RemoteRecord(
        id=remote_id,
        title=title,
        status=status,
        variants=(RemoteVariant(id=f"v{remote_id}", sku=sku, price=price, inventory_quantity=inventory),),
    )


class FakeWriter:
    """Records calls; identifiers listed in ``fail`` raise on create/update."""

    def __init__(self, fail=()):
        self.fail = set(fail)
        self.created = []
        self.updated = []
        self.deleted = []
        self._ids = itertools.count(5000)

    async def create(self, payload):
        sku = payload["variants"][0]["sku"]
        if sku in self.fail:
            raise RuntimeError(f"create rejected for {sku}")
        self.created.append(payload)
        return RemoteRecord(id=str(next(self._ids)), title=payload["title"], status=payload["status"])

    async def update(self, identifier, payload):
        if identifier in self.fail:
            raise RuntimeError(f"update rejected for {identifier}")
        self.updated.append((identifier, payload))
        return RemoteRecord(id=identifier, title=payload.get("title", ""), status=payload.get("status"))

    async def delete(self, identifier):
        self.deleted.append(identifier)


class StaticReader:
    def __init__(self, records=()):
        self.records = list(records)

    async def fetch_all(self):
        return list(self.records)


@pytest.fixture()
def reset_logging():
    """Drop the handlers configure_logging installs on the root logger."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in root.handlers[:]:
        if type(handler) in (logging.StreamHandler, RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture()
def vocabulary():
    return load_vocabulary()


@pytest.fixture()
def resolver(vocabulary):
    return TaxonomyResolver(vocabulary)


@pytest.fixture()
def builder(resolver):
    return ProductPayloadBuilder(resolver, vendor="QGold")


@pytest.fixture()
def settings():
    return SyncSettings(
        price_min=Decimal("1000"),
        price_max=Decimal("2000"),
        acceptable_lines=frozenset({"RING", "NECKLACE"}),
        exclusion_substrings=frozenset({"finding", "mounting", "engraveable"}),
        batch_size=10,
        max_concurrent_batches=3,
        delay_between_batch_windows=0,
        dry_run=True,
    )


@pytest.fixture()
def writer():
    return FakeWriter()
