from .crypto import CredentialVault, vault

__all__ = [
    "CredentialVault",
    "vault",
]
