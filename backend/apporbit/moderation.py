"""Product listing lifecycle: submission, moderation status, featuring and votes."""

import re
from typing import Dict, List, Optional, Tuple

from pymongo import ReturnDocument

from .errors import Conflict, NotFound, ValidationError
from .helpers import PRODUCT_STATUSES, clean_payload, normalize_email, parse_object_id, utcnow

PROTECTED_PRODUCT_FIELDS = {
    "_id",
    "id",
    "owner_email",
    "status",
    "is_featured",
    "votes",
    "voters",
    "created_at",
    "updated_at",
    "moderated_by",
    "moderated_at",
}


def fetch_product(db, product_id: str):
    product_document = db.products.find_one({"_id": parse_object_id(product_id, "product")})
    if not product_document:
        raise NotFound("Product not found.")
    return product_document


def create_product(db, owner_email: str, payload) -> Dict:
    fields = clean_payload(payload, PROTECTED_PRODUCT_FIELDS)
    name = str(fields.get("name", "") or "").strip()
    if not name:
        raise ValidationError("A product name is required.")
    fields["name"] = name

    now = utcnow()
    product_document = {
        **fields,
        "owner_email": normalize_email(owner_email),
        "status": "pending",
        "is_featured": False,
        "votes": 0,
        "voters": [],
        "created_at": now,
        "updated_at": now,
    }
    result = db.products.insert_one(product_document)
    product_document["_id"] = result.inserted_id
    return product_document


def update_product(db, product_id: str, payload) -> Dict:
    updates = clean_payload(payload, PROTECTED_PRODUCT_FIELDS)
    if not updates:
        raise ValidationError("Provide at least one field to update.")
    if "name" in updates and not str(updates["name"] or "").strip():
        raise ValidationError("A product name is required.")
    updates["updated_at"] = utcnow()

    updated = db.products.find_one_and_update(
        {"_id": parse_object_id(product_id, "product")},
        {"$set": updates},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Product not found.")
    return updated


def set_status(db, product_id: str, status: str, moderator_email: Optional[str] = None) -> Dict:
    # Any status may follow any other; only the value itself is constrained.
    if status not in PRODUCT_STATUSES:
        raise ValidationError("Status must be 'pending', 'accepted', or 'rejected'.")

    now = utcnow()
    updated = db.products.find_one_and_update(
        {"_id": parse_object_id(product_id, "product")},
        {
            "$set": {
                "status": status,
                "moderated_by": normalize_email(moderator_email) or None,
                "moderated_at": now,
                "updated_at": now,
            }
        },
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Product not found.")
    return updated


def accept_product(db, product_id: str, moderator_email: Optional[str] = None) -> Dict:
    return set_status(db, product_id, "accepted", moderator_email)


def reject_product(db, product_id: str, moderator_email: Optional[str] = None) -> Dict:
    return set_status(db, product_id, "rejected", moderator_email)


def set_featured(db, product_id: str, featured: bool = True) -> Dict:
    updated = db.products.find_one_and_update(
        {"_id": parse_object_id(product_id, "product")},
        {"$set": {"is_featured": bool(featured), "updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if not updated:
        raise NotFound("Product not found.")
    return updated


def cast_vote(db, product_id: str, voter_email: Optional[str]) -> Dict:
    """Record one vote per voter as a single conditional update.

    The filter only matches while the voter is absent from ``voters``, so two
    concurrent votes from the same account can not both land.
    """
    email = normalize_email(voter_email)
    if not email:
        raise ValidationError("A voter email is required.")

    object_id = parse_object_id(product_id, "product")
    updated = db.products.find_one_and_update(
        {"_id": object_id, "voters": {"$ne": email}},
        {"$inc": {"votes": 1}, "$addToSet": {"voters": email}},
        return_document=ReturnDocument.AFTER,
    )
    if updated:
        return updated

    if not db.products.find_one({"_id": object_id}, {"_id": 1}):
        raise NotFound("Product not found.")
    raise Conflict("You have already voted for this product.")


def delete_product_cascade(db, product_id: str) -> Dict[str, int]:
    """Delete a product, then every report filed against it.

    The report purge runs even when the product is already gone, so repeating
    the call finishes a purge that was interrupted between the two steps.
    """
    object_id = parse_object_id(product_id, "product")
    product_result = db.products.delete_one({"_id": object_id})
    reports_result = db.reports.delete_many({"product_id": str(object_id)})
    return {
        "deleted_count": product_result.deleted_count,
        "reports_deleted": reports_result.deleted_count,
    }


def list_products(db, owner_email: Optional[str] = None) -> List[Dict]:
    query: Dict[str, object] = {}
    if owner_email:
        query["owner_email"] = normalize_email(owner_email)
    return list(db.products.find(query).sort("created_at", -1))


def list_accepted(db, page: int, limit: int, search: Optional[str] = None) -> Tuple[List[Dict], int]:
    query: Dict[str, object] = {"status": "accepted"}
    search_term = str(search or "").strip()
    if search_term:
        regex = re.compile(re.escape(search_term), re.IGNORECASE)
        query["$or"] = [{"name": regex}, {"tags": regex}]

    cursor = (
        db.products.find(query)
        .sort("created_at", -1)
        .skip((page - 1) * limit)
        .limit(limit)
    )
    return list(cursor), db.products.count_documents(query)


def list_featured(db) -> List[Dict]:
    return list(
        db.products.find({"is_featured": True, "status": "accepted"}).sort("created_at", -1)
    )


def list_trending(db, limit: int = 6) -> List[Dict]:
    return list(
        db.products.find({"status": "accepted"})
        .sort([("votes", -1), ("created_at", -1)])
        .limit(limit)
    )


def list_review_queue(db, page: int = 1, limit: int = 20) -> Tuple[List[Dict], int]:
    """Pending listings first, then accepted and rejected, newest first within each status."""
    skip = (page - 1) * limit
    product_docs: List[Dict] = []
    total = 0
    for status in PRODUCT_STATUSES:
        query = {"status": status}
        count = db.products.count_documents(query)
        total += count
        if skip >= count:
            skip -= count
            continue
        wanted = limit - len(product_docs)
        if wanted > 0:
            cursor = db.products.find(query).sort("created_at", -1).skip(skip).limit(wanted)
            product_docs.extend(cursor)
        skip = 0
    return product_docs, total
