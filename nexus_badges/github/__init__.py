"""GitHub REST clients for the badge gist and the Actions configuration."""

from .actions import ActionsClient, RepositoryPublicKey, seal_secret
from .client import GitHubConfig, GitHubRestClient
from .errors import (
    GitHubAPIError,
    GitHubConfigError,
    GitHubError,
    GitHubResponseShapeError,
    SecretEncryptionError,
)
from .gist import (
    GIST_FILE_NAME,
    GistClient,
    GistSnapshot,
    decode_document,
    encode_document,
)

__all__ = [
    "GIST_FILE_NAME",
    "ActionsClient",
    "GistClient",
    "GistSnapshot",
    "GitHubAPIError",
    "GitHubConfig",
    "GitHubConfigError",
    "GitHubError",
    "GitHubResponseShapeError",
    "GitHubRestClient",
    "RepositoryPublicKey",
    "SecretEncryptionError",
    "decode_document",
    "encode_document",
    "seal_secret",
]
