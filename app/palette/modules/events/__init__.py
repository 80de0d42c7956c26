"""
Events module: workshops, competitions and general events.

- Listings are split by date into upcoming and past using the local day boundary
- Registration keeps each participant list duplicate-free and within capacity
- Admin create/edit/delete actions are recorded to the audit trail
"""
