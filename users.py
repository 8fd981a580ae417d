import logging
from typing import List, Optional

from passlib.context import CryptContext
from pydantic import BaseModel, EmailStr
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from database import create_document, get_documents, utcnow
from errors import AuthError, ConflictError, ForbiddenError, NotFoundError
from schemas import User

logger = logging.getLogger(__name__)

PUBLIC_FIELDS = ("username", "email", "firstname", "lastname", "phone", "role", "status")


class PasswordHasher:
    def __init__(self, rounds: int = 10):
        self.context = CryptContext(schemes=["bcrypt"], deprecated="auto", bcrypt__rounds=rounds)

    def hash(self, password: str) -> str:
        return self.context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        if not hashed:
            return False
        try:
            return self.context.verify(password, hashed)
        except ValueError:
            # stored value is not a bcrypt hash
            return False


# Request models
class RegisterRequest(BaseModel):
    firstname: str
    lastname: str
    username: str
    email: EmailStr
    phone: str
    password: str


class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class AdminCreateRequest(BaseModel):
    username: str = "admin"
    email: EmailStr = "admin@example.com"
    password: str = "admin123"


class AdminUpdateRequest(BaseModel):
    email: EmailStr
    password: str


class AdminRepairRequest(BaseModel):
    email: EmailStr = "admin@example.com"


def public_user(doc: dict) -> dict:
    out = {"id": str(doc["_id"])}
    out.update({k: doc.get(k) for k in PUBLIC_FIELDS})
    return out


def _insert_user(db: Database, user: User) -> str:
    try:
        return create_document(db, "user", user)
    except DuplicateKeyError as e:
        raise ConflictError("Email or username already exists") from e


def register_user(db: Database, hasher: PasswordHasher, payload: RegisterRequest) -> dict:
    existing = db["user"].find_one({"$or": [{"email": payload.email}, {"username": payload.username}]})
    if existing:
        raise ConflictError("Email or username already exists")

    user = User(
        firstname=payload.firstname,
        lastname=payload.lastname,
        username=payload.username,
        email=payload.email,
        phone=payload.phone,
        password=hasher.hash(payload.password),
        role="user",
        status="active",
    )
    uid = _insert_user(db, user)
    logger.info("Registered user %s", payload.username)
    return {"id": uid, "email": user.email, "username": user.username}


def login_user(db: Database, hasher: PasswordHasher, payload: LoginRequest) -> dict:
    user = db["user"].find_one({"email": payload.email})
    if not user or not hasher.verify(payload.password, user.get("password", "")):
        raise AuthError("Invalid credentials")
    if user.get("status") != "active":
        raise ForbiddenError("Account not active")
    return {
        "id": str(user["_id"]),
        "email": user.get("email"),
        "username": user.get("username"),
        "role": user.get("role", "user"),
        "status": user.get("status"),
    }


def create_admin(db: Database, hasher: PasswordHasher, payload: AdminCreateRequest) -> dict:
    if db["user"].find_one({"role": "admin"}):
        raise ConflictError("Admin user already exists")
    admin = User(
        username=payload.username,
        email=payload.email,
        password=hasher.hash(payload.password),
        role="admin",
        status="active",
    )
    uid = _insert_user(db, admin)
    logger.info("Created admin user %s", payload.username)
    return {"id": uid, "email": admin.email, "username": admin.username}


def update_admin(db: Database, hasher: PasswordHasher, payload: AdminUpdateRequest) -> None:
    try:
        res = db["user"].update_one(
            {"role": "admin"},
            {"$set": {"email": payload.email, "password": hasher.hash(payload.password), "updated_at": utcnow()}},
        )
    except DuplicateKeyError as e:
        raise ConflictError("Email already in use") from e
    if res.matched_count == 0:
        raise NotFoundError("Admin user not found")
    logger.info("Admin login details updated")


def list_users(db: Database, limit: Optional[int] = None) -> List[dict]:
    return [public_user(d) for d in get_documents(db, "user", {}, limit)]


# Maintenance for accounts written before role/status were enforced.

def activate_legacy_users(db: Database) -> int:
    """Mark users that have no status at all as active. Returns how many changed."""
    res = db["user"].update_many(
        {"status": {"$exists": False}},
        {"$set": {"status": "active", "updated_at": utcnow()}},
    )
    logger.info("Activated %d legacy user(s)", res.modified_count)
    return res.modified_count


def repair_admin(db: Database, email: str = "admin@example.com") -> dict:
    """Force role=admin and status=active on the account with this email."""
    doc = db["user"].find_one_and_update(
        {"email": email},
        {"$set": {"role": "admin", "status": "active", "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if doc is None:
        raise NotFoundError("Admin user not found")
    logger.info("Repaired admin account %s", email)
    return public_user(doc)
