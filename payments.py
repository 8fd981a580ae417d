"""
Payment method reconciliation.

A partial update such as {"bitcoin": "...", "paypal": "..."} is folded into one
document per payment type. Each type is written with a single atomic upsert keyed
by "type" (unique index), so there is never more than one record per type.
Crypto addresses are merged key by key: currencies missing from the update keep
their stored values.
"""

import logging
from typing import Any, Dict, List, Optional, Union

import pydantic
from pydantic import BaseModel
from pymongo import ReturnDocument
from pymongo.database import Database

from database import serialize_doc, to_object_id, utcnow
from errors import NotFoundError, ValidationError
from schemas import (
    BankCredentials,
    PayPalCredentials,
    PaymentMethod,
    PaymentType,
    SkypeCredentials,
)

logger = logging.getLogger(__name__)

CRYPTO_FIELDS = ("bitcoin", "ethereum", "usdt")


class PaymentMethodsUpdate(BaseModel):
    bank: Optional[str] = None
    paypal: Optional[str] = None
    skype: Optional[str] = None
    bitcoin: Optional[str] = None
    ethereum: Optional[str] = None
    usdt: Optional[str] = None


class CryptoAddressesUpdate(BaseModel):
    bitcoin: Optional[str] = None
    ethereum: Optional[str] = None
    usdt: Optional[str] = None


def parse_type(value: str) -> PaymentType:
    for t in PaymentType:
        if t.value.lower() == str(value).lower():
            return t
    raise NotFoundError(f"Unknown payment method type '{value}'")


class PaymentMethodReconciler:
    def __init__(self, db: Database):
        self.db = db

    @property
    def methods(self):
        return self.db["paymentmethod"]

    def apply_update(self, payload: Union[PaymentMethodsUpdate, dict]) -> List[str]:
        """Upsert every payment type named in the payload. Returns the types written."""
        if isinstance(payload, dict):
            try:
                payload = PaymentMethodsUpdate.model_validate(payload)
            except pydantic.ValidationError as e:
                raise ValidationError(f"Invalid payment methods: {e.errors()[0]['msg']}") from e

        # Empty strings count as "not provided".
        present = {k: v for k, v in payload.model_dump().items() if v}
        written = []

        if "bank" in present:
            self._replace_credentials(PaymentType.BANK, BankCredentials(account=present["bank"]))
            written.append(PaymentType.BANK.value)
        if "paypal" in present:
            self._replace_credentials(PaymentType.PAYPAL, PayPalCredentials(email=present["paypal"]))
            written.append(PaymentType.PAYPAL.value)
        if "skype" in present:
            self._replace_credentials(PaymentType.SKYPE, SkypeCredentials(id=present["skype"]))
            written.append(PaymentType.SKYPE.value)

        crypto = {k: present[k] for k in CRYPTO_FIELDS if k in present}
        if crypto:
            self._upsert(PaymentType.CRYPTO, {f"credentials.{k}": v for k, v in crypto.items()})
            written.append(PaymentType.CRYPTO.value)

        if written:
            logger.info("Payment methods updated: %s", ", ".join(written))
        return written

    def _replace_credentials(self, method_type: PaymentType, credentials: BaseModel) -> dict:
        return self._upsert(method_type, {"credentials": credentials.model_dump()})

    def _upsert(self, method_type: PaymentType, fields: Dict[str, Any], active: bool = True,
                upsert: bool = True) -> Optional[dict]:
        now = utcnow()
        return self.methods.find_one_and_update(
            {"type": method_type.value},
            {
                "$set": {**fields, "active": active, "updated_at": now},
                "$inc": {"version": 1},
                "$setOnInsert": {"created_at": now},
            },
            upsert=upsert,
            return_document=ReturnDocument.AFTER,
        )

    def fetch_active(self) -> List[dict]:
        return self._render_all(self.methods.find({"active": True}))

    def list_all(self) -> List[dict]:
        return self._render_all(self.methods.find())

    def set_active(self, method_type: str, active: bool) -> dict:
        t = parse_type(method_type)
        doc = self.methods.find_one_and_update(
            {"type": t.value},
            {"$set": {"active": active, "updated_at": utcnow()}, "$inc": {"version": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise NotFoundError(f"{t.value} payment method not configured")
        logger.info("Payment method %s active=%s", t.value, active)
        return self._render(doc)

    def delete(self, method_id: str) -> None:
        oid = to_object_id(method_id)
        res = self.methods.delete_one({"_id": oid}) if oid else None
        if res is None or res.deleted_count == 0:
            raise NotFoundError("Payment method not found")
        logger.info("Deleted payment method %s", method_id)

    # Crypto addresses live on the Crypto payment method record.

    def get_crypto_addresses(self) -> dict:
        doc = self.methods.find_one({"type": PaymentType.CRYPTO.value}) or {}
        credentials = doc.get("credentials") or {}
        addresses = {k: credentials.get(k) or "" for k in CRYPTO_FIELDS}
        addresses["updatedAt"] = doc.get("updated_at")
        return addresses

    def replace_crypto_addresses(self, payload: CryptoAddressesUpdate) -> dict:
        credentials = {k: getattr(payload, k) or "" for k in CRYPTO_FIELDS}
        if any(credentials.values()):
            self._upsert(PaymentType.CRYPTO, {"credentials": credentials})
            logger.info("Crypto addresses replaced")
        else:
            # Nothing to pay to: clear and hide an existing record, never create one.
            self._upsert(PaymentType.CRYPTO, {"credentials": credentials}, active=False, upsert=False)
            logger.info("Crypto addresses cleared; crypto payments disabled")
        return self.get_crypto_addresses()

    def _render_all(self, docs) -> List[dict]:
        rendered = []
        for d in docs:
            try:
                rendered.append(self._render(d))
            except pydantic.ValidationError:
                logger.warning("Skipping malformed payment method %s", d.get("_id"))
        return rendered

    @staticmethod
    def _render(doc: dict) -> dict:
        method = PaymentMethod.model_validate(doc)
        out = serialize_doc(doc)
        out.update(method.model_dump())
        return out
