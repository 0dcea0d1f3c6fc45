"""Data broker directory routes."""

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from brokers import SCANNER_REGISTRY
from brokers.clusters import CLUSTER_BROKER_KEYS
from brokers.directory import (
    BROKER_CATEGORIES,
    DATA_BROKER_DIRECTORY,
    get_broker_category,
    get_data_broker_info,
    get_opt_out_instructions,
    get_related_sources,
    get_removal_coverage,
    get_subsidiaries,
)

router = APIRouter()


# Schemas
class BrokerResponse(BaseModel):
    key: str
    name: str
    opt_out_url: str | None
    opt_out_email: str | None
    privacy_email: str | None
    removal_method: str
    estimated_days: int
    notes: str | None
    consolidates_to: str | None
    is_removable: bool
    category: str | None


class BrokerDetail(BrokerResponse):
    subsidiaries: list[str]
    related_sources: list[str]
    coverage: dict
    instructions: str
    scannable: bool


def _is_scannable(key: str) -> bool:
    return key in SCANNER_REGISTRY or key in CLUSTER_BROKER_KEYS


def _broker_dict(key: str) -> dict:
    info = DATA_BROKER_DIRECTORY[key]
    data = info.to_dict(key)
    data["category"] = data["category"] or get_broker_category(key)
    return data


@router.get("/", response_model=list[BrokerResponse])
async def list_brokers(category: str | None = None, skip: int = 0, limit: int = 100):
    """List brokers in the directory, optionally one category."""
    if category:
        if category not in BROKER_CATEGORIES:
            raise HTTPException(status_code=404, detail="Unknown category")
        keys = [k for k in BROKER_CATEGORIES[category] if k in DATA_BROKER_DIRECTORY]
    else:
        keys = sorted(DATA_BROKER_DIRECTORY, key=lambda k: DATA_BROKER_DIRECTORY[k].name.lower())

    return [BrokerResponse(**_broker_dict(key)) for key in keys[skip:skip + limit]]


@router.get("/categories")
async def list_categories():
    return {category: len(keys) for category, keys in BROKER_CATEGORIES.items()}


@router.get("/{key}", response_model=BrokerDetail)
async def get_broker(key: str):
    """Directory entry plus ownership and coverage for one broker."""
    key = key.upper()
    if not get_data_broker_info(key):
        raise HTTPException(status_code=404, detail="Broker not found")

    return BrokerDetail(
        **_broker_dict(key),
        subsidiaries=get_subsidiaries(key),
        related_sources=get_related_sources(key),
        coverage=get_removal_coverage(key),
        instructions=get_opt_out_instructions(key),
        scannable=_is_scannable(key),
    )
