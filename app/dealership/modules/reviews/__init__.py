"""
Reviews module.

- Buyers review a car once; reviews start PENDING and need moderation
- Helpful/unhelpful votes, one per user per review
"""
