import logging
from typing import List, Optional

from pymongo.database import Database

from database import create_document, get_documents, serialize_doc, to_object_id
from errors import NotFoundError, ValidationError
from schemas import Product
from storage import ImageUploader

logger = logging.getLogger(__name__)


def list_products(db: Database, category: Optional[str] = None) -> List[dict]:
    filter_dict = {"category": category} if category else {}
    return [serialize_doc(d) for d in get_documents(db, "product", filter_dict)]


def get_product(db: Database, product_id: str) -> dict:
    oid = to_object_id(product_id)
    doc = db["product"].find_one({"_id": oid}) if oid else None
    if not doc:
        raise NotFoundError("Product not found")
    return serialize_doc(doc)


def create_product(db: Database, uploader: ImageUploader, *, name: Optional[str], price: Optional[float],
                   category: Optional[str], image: Optional[bytes], content_type: Optional[str],
                   description: Optional[str] = None) -> dict:
    """Upload the image, then store the product. Nothing is stored if the upload fails."""
    if not name or not category or price is None or not image:
        raise ValidationError("Missing required fields: name, category, price, image")
    if price < 0:
        raise ValidationError("Price must not be negative")
    if not content_type or not content_type.startswith("image/"):
        raise ValidationError("Only image files are allowed!")

    url = uploader.upload(image, content_type)
    product = Product(name=name, description=description, price=price, image=url,
                      category=category, available=True)
    pid = create_document(db, "product", product)
    logger.info("Created product %s (%s)", pid, name)
    return get_product(db, pid)


def delete_product(db: Database, product_id: str) -> None:
    # Orders keep their own snapshots, so nothing cascades.
    oid = to_object_id(product_id)
    res = db["product"].delete_one({"_id": oid}) if oid else None
    if res is None or res.deleted_count == 0:
        raise NotFoundError("Product not found")
    logger.info("Deleted product %s", product_id)
