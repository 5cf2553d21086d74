# crm_billing/services/admcloud_catalog.py
"""Flattens AdmCloud catalog records into the id/name pairs the settings screens use."""

from typing import Dict, List


def map_items(records: List[Dict]) -> List[Dict]:
    return [
        {
            "id": record.get("ID") or record.get("Id") or "",
            "code": record.get("SKU") or record.get("Code") or "",
            "name": record.get("Name") or record.get("Description") or "",
            "price": record.get("Price") or 0,
        }
        for record in records
    ]


def map_named(records: List[Dict]) -> List[Dict]:
    return [{"id": record.get("ID"), "name": record.get("Name")} for record in records]


def map_price_lists(records: List[Dict]) -> List[Dict]:
    # The PriceList endpoint returns one row per item and price level
    price_lists = {}
    for record in records:
        level_id = record.get("PriceLevelID")
        name = record.get("PriceLevelName")
        if level_id and name and level_id not in price_lists:
            price_lists[level_id] = {"id": level_id, "name": name}
    return sorted(price_lists.values(), key=lambda entry: entry["name"].lower())
