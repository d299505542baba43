"""Domain models and value objects.

- Pure, strict data structures (Pydantic v2 and frozen dataclasses).
- The domain knows nothing about HTTP, the CLI or storage.
"""
