"""
Domain layer for message composition business logic.

This layer contains:
- Data models (type-safe structures)
- Collaborator interfaces (identity directory, message store, delivery)
- Business logic (recipient resolution, reply drafts, message assembly)
- Result types (explicit outcome handling)
"""
