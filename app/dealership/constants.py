"""
Central constants for the dealership application.
"""
from __future__ import annotations

# Permission catalogue: key -> display name
PERMISSIONS = {
    "admin.view": "Admin: view back-office",
    "cars.create": "Cars: create listings",
    "cars.edit": "Cars: edit listings",
    "cars.delete": "Cars: delete listings",
    "test_drives.book": "Test drives: book",
    "test_drives.manage": "Test drives: manage all bookings",
    "purchases.create": "Purchases: buy a car",
    "reviews.write": "Reviews: write",
    "reviews.vote": "Reviews: vote",
    "reviews.moderate": "Reviews: moderate",
}

CUSTOMER_PERMISSIONS = (
    "test_drives.book",
    "purchases.create",
    "reviews.write",
    "reviews.vote",
)

ADMIN_PERMISSIONS = CUSTOMER_PERMISSIONS + (
    "admin.view",
    "cars.create",
    "cars.edit",
    "cars.delete",
    "test_drives.manage",
    "reviews.moderate",
)

ROLES = {
    "customer": ("Customer", CUSTOMER_PERMISSIONS),
    "admin": ("Administrator", ADMIN_PERMISSIONS),
}
