from .exceptions import InvalidIdentifierError, RegistryError, StoreError

__all__ = ["InvalidIdentifierError", "RegistryError", "StoreError"]
