from typing import Dict

from .helpers import PRODUCT_STATUSES


def get_statistics(db) -> Dict[str, object]:
    pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
    grouped = {row["_id"]: row["count"] for row in db.products.aggregate(pipeline)}

    # $group only emits statuses that exist; report every status explicitly.
    counts_by_status = {status: int(grouped.get(status, 0)) for status in PRODUCT_STATUSES}

    return {
        "counts_by_status": counts_by_status,
        "total_products": sum(grouped.values()),
        "total_users": db.users.estimated_document_count(),
        "total_reviews": db.reviews.estimated_document_count(),
    }
