import logging
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pymongo import ReturnDocument
from pymongo.database import Database

from database import serialize_doc, utcnow
from schemas import Shipping

logger = logging.getLogger(__name__)

SINGLETON_KEY = "default"


class ShippingUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    method: Optional[str] = None
    cost: Optional[float] = Field(None, ge=0)
    estimated_delivery: Optional[str] = Field(None, alias="estimatedDelivery")


def _defaults_except(fields) -> dict:
    defaults = Shipping(key=SINGLETON_KEY).model_dump(by_alias=True)
    # key comes from the upsert filter
    return {k: v for k, v in defaults.items() if k not in fields and k != "key"}


def get_shipping(db: Database) -> dict:
    """Return the shipping settings, creating them with defaults on first read."""
    now = utcnow()
    doc = db["shipping"].find_one_and_update(
        {"key": SINGLETON_KEY},
        {"$setOnInsert": {**_defaults_except(()), "created_at": now, "updated_at": now}},
        upsert=True,
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc)


def update_shipping(db: Database, payload: ShippingUpdate) -> dict:
    changes = payload.model_dump(by_alias=True, exclude_none=True)
    now = utcnow()
    update = {
        "$set": {**changes, "updated_at": now},
        "$setOnInsert": {**_defaults_except(changes), "created_at": now},
    }
    doc = db["shipping"].find_one_and_update(
        {"key": SINGLETON_KEY}, update, upsert=True, return_document=ReturnDocument.AFTER,
    )
    logger.info("Shipping settings updated: %s", ", ".join(sorted(changes)) or "no changes")
    return serialize_doc(doc)
