"""Mapping of feed records onto Shopify product payloads."""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, Iterable

from jinja2 import Environment, FileSystemLoader, select_autoescape

from catalog_sync.ingest.models import IncomingRecord, RemoteRecord
from catalog_sync.logic.eligibility import parse_price
from catalog_sync.logic.reconcile import INVENTORY, PRICE, STATUS, TITLE, normalize_status, parse_quantity
from catalog_sync.logic.taxonomy import TaxonomyResolver

TEMPLATE_DIR = Path(__file__).parent / "templates"
ENV = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(enabled_extensions=("html",)),
    trim_blocks=True,
    lstrip_blocks=True,
)

GRAMS_PER_OUNCE = 28.35
EXTRA_IMAGES = 9

# checked in order; more specific terms first
PRODUCT_TYPES: tuple[tuple[tuple[str, ...], str], ...] = (
    (("necklaces", "chains"), "Necklaces"),
    (("earrings",), "Earrings"),
    (("bracelets",), "Bracelets"),
    (("anklets",), "Anklets"),
    (("rings",), "Rings"),
    (("pendants", "charms"), "Pendants & Charms"),
    (("watch accessories", "watch bands"), "Watch Accessories"),
    (("watches",), "Watches"),
    (("brooches", "lapel pins"), "Brooches & Pins"),
    (("jewelry sets", "sets"), "Jewelry Sets"),
    (("body jewelry",), "Body Jewelry"),
)

METAFIELDS: tuple[tuple[str, str, str], ...] = (
    ("ListOfSpecs", "specifications", "multi_line_text_field"),
    ("Metal_Desc", "metal_description", "single_line_text_field"),
    ("Country_Of_Origin", "country_of_origin", "single_line_text_field"),
)


def format_price(value: Any) -> str:
    price = parse_price(value)
    return f"{price:.2f}" if price is not None else "0.00"


def generate_handle(title: str | None) -> str:
    if not title:
        return "product"
    handle = re.sub(r"[^a-z0-9\s-]", "", title.lower())
    handle = re.sub(r"\s+", "-", handle)
    handle = re.sub(r"-+", "-", handle).strip("-")
    return handle[:100] or "product"


def parse_weight_grams(value: str | None) -> int:
    ounces = parse_price(value)
    return round(float(ounces) * GRAMS_PER_OUNCE) if ounces is not None else 0


def product_type(category_path: str | None) -> str:
    if category_path:
        first = category_path.split(";")[0].lower()
        for keywords, label in PRODUCT_TYPES:
            if any(keyword in first for keyword in keywords):
                return label
    return "Jewelry"


class ProductPayloadBuilder:
    """Deterministic record -> payload mapping for the product endpoints."""

    def __init__(self, resolver: TaxonomyResolver, *, vendor: str = "QGold") -> None:
        self.resolver = resolver
        self.vendor = vendor

    def build(self, record: IncomingRecord) -> dict[str, Any]:
        status = normalize_status(record.status)
        payload: dict[str, Any] = {
            "title": record.title,
            "handle": generate_handle(record.name or record.identifier),
            "body_html": self.render_body(record),
            "vendor": self.vendor,
            "product_type": product_type(record.category_path),
            "status": status,
            "published": status == "active",
            "tags": ", ".join(self._tags(record)),
            "variants": [self._variant(record)],
            "images": self._images(record),
            "metafields": self._metafields(record),
            "category": self.resolver.resolve(record.category_path),
        }
        if record.name:
            payload["seo_title"] = record.name[:70]
            payload["seo_description"] = f"{record.name} {record.attribute('Metal_Desc')}".strip()[:160]
        return payload

    def build_update(
        self,
        record: IncomingRecord,
        remote: RemoteRecord,
        changed_fields: Iterable[str],
    ) -> dict[str, Any]:
        changed = set(changed_fields)
        payload: dict[str, Any] = {"id": remote.id}
        if TITLE in changed:
            payload["title"] = record.title
        if STATUS in changed:
            payload["status"] = normalize_status(record.status)
        variant = remote.primary_variant
        if variant is not None and changed & {PRICE, INVENTORY}:
            variant_update: dict[str, Any] = {"id": variant.id}
            if PRICE in changed:
                variant_update["price"] = format_price(record.price)
            if INVENTORY in changed:
                variant_update["inventory_quantity"] = parse_quantity(record.inventory)
            payload["variants"] = [variant_update]
        return payload

    def render_body(self, record: IncomingRecord) -> str:
        specs = [spec.strip() for spec in record.attribute("ListOfSpecs").split("|") if spec.strip()]
        html = ENV.get_template("product_body.html").render(
            name=record.name,
            metal=record.attribute("Metal_Desc"),
            weight=record.attribute("Weight"),
            length=record.attribute("Length"),
            width=record.attribute("Width"),
            specs=specs,
        ).strip()
        return html or "<p>Quality jewelry piece</p>"

    def _variant(self, record: IncomingRecord) -> dict[str, Any]:
        msrp = record.attribute("MSRP")
        variant: dict[str, Any] = {
            "title": "Default Title",
            "sku": record.identifier or "",
            "barcode": record.attribute("UPC"),
            "price": format_price(record.price),
            "compare_at_price": format_price(msrp) if msrp else None,
            "inventory_management": "shopify",
            "inventory_quantity": parse_quantity(record.inventory),
            "weight": parse_weight_grams(record.attribute("Weight")),
            "weight_unit": "g",
        }
        size = record.attribute("Size")
        length, width = record.attribute("Length"), record.attribute("Width")
        if size:
            variant["option1"] = size
        elif length or width:
            variant["option1"] = "x".join(part for part in (length, width) if part)
        return variant

    def _images(self, record: IncomingRecord) -> list[dict[str, str]]:
        alt = record.name or record.identifier or ""
        images: list[dict[str, str]] = []
        primary = record.attribute("ImageLink_1000")
        if primary:
            images.append({"src": primary, "alt": alt})
        for index in range(1, EXTRA_IMAGES + 1):
            link = record.attribute(f"Image{index}Link")
            if link:
                images.append({"src": link, "alt": f"{alt} - View {index}"})
        return images

    def _metafields(self, record: IncomingRecord) -> list[dict[str, str]]:
        metafields: list[dict[str, str]] = []
        if record.identifier:
            metafields.append(
                {"namespace": "custom", "key": "item_number", "value": record.identifier, "type": "single_line_text_field"}
            )
        for column, key, field_type in METAFIELDS:
            value = record.attribute(column)
            if value:
                metafields.append({"namespace": "custom", "key": key, "value": value, "type": field_type})
        return metafields

    def _tags(self, record: IncomingRecord) -> list[str]:
        tags: list[str] = []
        metal = record.attribute("Metal_Desc")
        if metal:
            tags.append(metal)
        tags.extend(attr.strip() for attr in record.attribute("Attributes").split(";") if attr.strip())
        if record.line:
            tags.append(record.line)
        return tags
