import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from database import create_document, ensure_indexes
from errors import UploadError
from main import create_app
from schemas import Product


class FakeUploader:
    """Stands in for Cloudinary; records uploads and hands out predictable URLs."""

    def __init__(self):
        self.fail = False
        self.uploads = []

    def upload(self, data, content_type):
        if self.fail:
            raise UploadError("Image upload failed: service unavailable")
        self.uploads.append((data, content_type))
        return f"https://res.cloudinary.com/demo/image/upload/product{len(self.uploads)}.png"


@pytest.fixture
def settings():
    return Settings(database_url="mongodb://localhost:27017", database_name="docushop_test", bcrypt_rounds=4)


@pytest.fixture
def mongo_client():
    return mongomock.MongoClient()


@pytest.fixture
def db(mongo_client, settings):
    database = mongo_client[settings.database_name]
    ensure_indexes(database)
    return database


@pytest.fixture
def uploader():
    return FakeUploader()


@pytest.fixture
def client(settings, mongo_client, uploader, db):
    app = create_app(settings, client=mongo_client, uploader=uploader)
    with TestClient(app) as c:
        yield c


@pytest.fixture
def make_product(db):
    def _make(name="Neon Poster", price=19.5, category="prints"):
        product = Product(
            name=name,
            price=price,
            category=category,
            image="https://res.cloudinary.com/demo/image/upload/seed.png",
        )
        return create_document(db, "product", product)
    return _make


@pytest.fixture
def billing():
    return {
        "name": "Ada Lovelace",
        "email": "ada@example.com",
        "phone": "+44 20 7946 0000",
        "address": "12 St James's Square",
        "city": "London",
        "country": "UK",
    }
