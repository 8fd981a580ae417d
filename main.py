import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from pymongo import MongoClient
from pymongo.database import Database
from pymongo.errors import PyMongoError

import catalog
import shipping
import users
from config import Settings, load_settings
from database import connect, ensure_indexes
from errors import ShopError, StoreError
from orders import OrderWorkflow, PlaceOrderRequest
from payments import CryptoAddressesUpdate, PaymentMethodReconciler, PaymentMethodsUpdate
from schemas import OrderStatus
from storage import ImageUploader

logger = logging.getLogger("docushop")

router = APIRouter()


# Dependencies

def get_db(request: Request) -> Database:
    db = getattr(request.app.state, "db", None)
    if db is None:
        raise StoreError("Database not configured")
    return db


def get_uploader(request: Request) -> ImageUploader:
    return request.app.state.uploader


def get_hasher(request: Request) -> users.PasswordHasher:
    return request.app.state.hasher


def get_orders(db: Database = Depends(get_db)) -> OrderWorkflow:
    return OrderWorkflow(db)


def get_payments(db: Database = Depends(get_db)) -> PaymentMethodReconciler:
    return PaymentMethodReconciler(db)


# Request models
class StatusUpdate(BaseModel):
    status: OrderStatus


class ActiveUpdate(BaseModel):
    active: bool


@router.get("/")
def read_root():
    return {"message": "DocuShop API running"}


@router.get("/test")
def test_database(request: Request):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_name": None,
        "connection_status": "Not Connected",
        "collections": []
    }
    db = getattr(request.app.state, "db", None)
    try:
        if db is not None:
            response["database"] = "✅ Available"
            response["database_name"] = db.name
            response["connection_status"] = "Connected"
            try:
                collections = db.list_collection_names()
                response["collections"] = collections[:10]
                response["database"] = "✅ Connected & Working"
            except Exception as e:
                response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
        else:
            response["database"] = "⚠️  Available but not initialized"
    except Exception as e:
        response["database"] = f"❌ Error: {str(e)[:80]}"
    return response


# Users
@router.post("/users/register")
def register(payload: users.RegisterRequest, db: Database = Depends(get_db),
             hasher: users.PasswordHasher = Depends(get_hasher)):
    user = users.register_user(db, hasher, payload)
    return {"message": "Registration successful", "user": user}


@router.post("/users/login")
def login(payload: users.LoginRequest, db: Database = Depends(get_db),
          hasher: users.PasswordHasher = Depends(get_hasher)):
    user = users.login_user(db, hasher, payload)
    return {"message": "Login successful", "user": user}


@router.post("/create-admin")
def create_admin(payload: Optional[users.AdminCreateRequest] = None, db: Database = Depends(get_db),
                 hasher: users.PasswordHasher = Depends(get_hasher)):
    admin = users.create_admin(db, hasher, payload or users.AdminCreateRequest())
    return {"message": "Admin user created", "admin": admin}


@router.put("/users/admin")
def update_admin(payload: users.AdminUpdateRequest, db: Database = Depends(get_db),
                 hasher: users.PasswordHasher = Depends(get_hasher)):
    users.update_admin(db, hasher, payload)
    return {"message": "Admin login details updated"}


@router.get("/users")
def list_users(db: Database = Depends(get_db)):
    return users.list_users(db)


@router.post("/users/activate-legacy")
def activate_legacy_users(db: Database = Depends(get_db)):
    updated = users.activate_legacy_users(db)
    return {"message": f"Updated {updated} users to status: active", "updated": updated}


@router.post("/users/admin/repair")
def repair_admin(payload: Optional[users.AdminRepairRequest] = None, db: Database = Depends(get_db)):
    admin = users.repair_admin(db, (payload or users.AdminRepairRequest()).email)
    return {"message": "Admin user updated", "admin": admin}


# Products
@router.get("/products")
def list_products(category: Optional[str] = None, db: Database = Depends(get_db)):
    return catalog.list_products(db, category)


@router.get("/products/{product_id}")
def get_product(product_id: str, db: Database = Depends(get_db)):
    return catalog.get_product(db, product_id)


@router.post("/products")
def create_product(
    name: Optional[str] = Form(None),
    description: Optional[str] = Form(None),
    price: Optional[float] = Form(None),
    category: Optional[str] = Form(None),
    image: Optional[UploadFile] = File(None),
    db: Database = Depends(get_db),
    uploader: ImageUploader = Depends(get_uploader),
):
    product = catalog.create_product(
        db,
        uploader,
        name=name,
        price=price,
        category=category,
        image=image.file.read() if image else None,
        content_type=image.content_type if image else None,
        description=description,
    )
    return {"message": "Product created", "product": product}


@router.delete("/products/{product_id}")
def delete_product(product_id: str, db: Database = Depends(get_db)):
    catalog.delete_product(db, product_id)
    return {"message": "Product deleted"}


# Orders
@router.get("/orders")
def list_orders(workflow: OrderWorkflow = Depends(get_orders)):
    return workflow.list_orders()


@router.post("/orders")
def place_order(payload: PlaceOrderRequest, workflow: OrderWorkflow = Depends(get_orders)):
    order = workflow.place_order(payload)
    return {"message": "Order placed", "order": order}


@router.get("/orders/{order_id}")
def get_order(order_id: str, workflow: OrderWorkflow = Depends(get_orders)):
    return workflow.get_order(order_id)


@router.patch("/orders/{order_id}/cancel")
def cancel_order(order_id: str, workflow: OrderWorkflow = Depends(get_orders)):
    order = workflow.cancel_order(order_id)
    return {"message": "Order cancelled", "order": order}


@router.patch("/orders/{order_id}/status")
def update_order_status(order_id: str, body: StatusUpdate, workflow: OrderWorkflow = Depends(get_orders)):
    order = workflow.set_status(order_id, body.status)
    return {"message": "Order updated", "order": order}


@router.delete("/orders/{order_id}")
def delete_order(order_id: str, workflow: OrderWorkflow = Depends(get_orders)):
    workflow.delete_order(order_id)
    return {"message": "Order deleted"}


# Payment methods
@router.get("/api/payment-methods")
def active_payment_methods(payments: PaymentMethodReconciler = Depends(get_payments)):
    return payments.fetch_active()


@router.get("/api/payment-methods/all")
def all_payment_methods(payments: PaymentMethodReconciler = Depends(get_payments)):
    return payments.list_all()


@router.put("/api/payment-methods")
def update_payment_methods(payload: PaymentMethodsUpdate,
                           payments: PaymentMethodReconciler = Depends(get_payments)):
    payments.apply_update(payload)
    return {"message": "Payment methods saved/updated successfully"}


@router.patch("/api/payment-methods/{method_type}")
def toggle_payment_method(method_type: str, body: ActiveUpdate,
                          payments: PaymentMethodReconciler = Depends(get_payments)):
    method = payments.set_active(method_type, body.active)
    return {"message": "Payment method updated", "method": method}


@router.delete("/api/payment-methods/{method_id}")
def delete_payment_method(method_id: str, payments: PaymentMethodReconciler = Depends(get_payments)):
    payments.delete(method_id)
    return {"message": "Payment method deleted"}


# Crypto addresses
@router.get("/crypto-addresses")
def get_crypto_addresses(payments: PaymentMethodReconciler = Depends(get_payments)):
    return payments.get_crypto_addresses()


@router.put("/crypto-addresses")
def update_crypto_addresses(payload: CryptoAddressesUpdate,
                            payments: PaymentMethodReconciler = Depends(get_payments)):
    addresses = payments.replace_crypto_addresses(payload)
    return {"message": "Crypto addresses updated", "addresses": addresses}


# Shipping
@router.get("/api/shipping")
def get_shipping(db: Database = Depends(get_db)):
    return shipping.get_shipping(db)


@router.put("/api/shipping")
def update_shipping(payload: shipping.ShippingUpdate, db: Database = Depends(get_db)):
    updated = shipping.update_shipping(db, payload)
    return {"message": "Shipping settings updated", "shipping": updated}


# Error handlers

async def handle_shop_error(request: Request, exc: ShopError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


async def handle_store_error(request: Request, exc: PyMongoError):
    logger.exception("Database error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Database error"})


def create_app(settings: Settings, client: Optional[MongoClient] = None,
               uploader: Optional[ImageUploader] = None) -> FastAPI:
    """Build the API. Pass `client`/`uploader` to reuse existing ones (tests do)."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        mongo = client if client is not None else connect(settings)
        db = mongo[settings.database_name]
        try:
            ensure_indexes(db)
        except PyMongoError as e:
            logger.warning("Unable to ensure indexes: %s", e)
        app.state.db = db
        app.state.uploader = uploader or ImageUploader(settings)
        app.state.hasher = users.PasswordHasher(settings.bcrypt_rounds)
        logger.info("DocuShop API started (database %s)", settings.database_name)
        try:
            yield
        finally:
            app.state.db = None
            if client is None:
                mongo.close()
                logger.info("MongoDB connection closed")

    app = FastAPI(title="DocuShop API", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(ShopError, handle_shop_error)
    app.add_exception_handler(PyMongoError, handle_store_error)
    app.include_router(router)
    return app


if __name__ == "__main__":
    import uvicorn
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    settings = load_settings()
    uvicorn.run(create_app(settings), host="0.0.0.0", port=settings.port)
