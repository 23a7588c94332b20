# server_manager/exceptions.py


class ServerManagerError(Exception):
    """Base error for the server manager"""


class VaultError(ServerManagerError):
    """The vault key store is unavailable, a secret cannot be sealed"""


class ConfigStoreError(ServerManagerError):
    """Reading or writing the endpoint configuration failed"""


class SessionError(ServerManagerError):
    """A protocol session failed to connect or to complete an operation"""


class EndpointNotFoundError(ServerManagerError):
    pass


class DuplicateEndpointError(ServerManagerError):
    pass
