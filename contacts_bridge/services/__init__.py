"""
Contacts Bridge Services

Each service follows the same pattern:
- interface.py: ABC defining the contract + dataclasses
- manager.py: Account CRUD, adapter registry, routing
- adapters/: Platform-specific implementations
"""
