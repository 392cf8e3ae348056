from apporbit.statistics import get_statistics


def test_counts_are_densified_over_every_status(db):
    db.products.insert_many(
        [
            {"name": "One", "status": "pending"},
            {"name": "Two", "status": "accepted"},
            {"name": "Three", "status": "accepted"},
        ]
    )
    db.users.insert_many([{"email": "a@x.com"}, {"email": "b@x.com"}])
    db.reviews.insert_one({"product_id": "p", "text": "nice"})

    statistics = get_statistics(db)

    assert statistics["counts_by_status"] == {"pending": 1, "accepted": 2, "rejected": 0}
    assert statistics["total_products"] == 3
    assert statistics["total_users"] == 2
    assert statistics["total_reviews"] == 1


def test_empty_store(db):
    statistics = get_statistics(db)

    assert statistics["counts_by_status"] == {"pending": 0, "accepted": 0, "rejected": 0}
    assert statistics["total_users"] == 0
    assert statistics["total_reviews"] == 0
