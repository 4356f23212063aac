"""
srht-export client layer - configuration, GraphQL access and CLI.

Talks to the sr.ht family of services (meta, git, hg, builds, paste, lists,
todo) over their GraphQL APIs.
"""

__version__ = "0.1.0"

from .config import SrhtConfig
from .context import OperationCancelled, OperationContext
from .graphql_client import GraphQLClientError, GraphQLError, SrhtClient, Upload

__all__ = [
    "GraphQLClientError",
    "GraphQLError",
    "OperationCancelled",
    "OperationContext",
    "SrhtClient",
    "SrhtConfig",
    "Upload",
    "__version__",
]
