"""
Inventory module.

- Public listing search, car detail, sold-car history
- Admin CRUD for listings (status AVAILABLE/UNAVAILABLE/SOLD, featured flag)
- Every admin change is recorded to the audit trail
"""
