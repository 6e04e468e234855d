"""Salesforce Org Connector Package"""

# Expose key components at package level for convenience

# Exceptions (centralized)
from sf_connector.exceptions import (
    SalesforceError,
    SFConnectionError,
    SFAuthError,
    SFAPIError,
    ProcessError,
    DataRequiredError,
    OperationNotAllowedError,
    PathValidationError,
    FormatError,
    RetrieveTimeoutError,
)

# API
from sf_connector.api.process import ProcessRunner, ProcessResponse
from sf_connector.api.sf_auth import get_sf_auth_info, list_auth_orgs
from sf_connector.api.sf_client import OrgClient

# Metadata
from sf_connector.metadata.tree import MetadataNode, flatten_to_selector, parse_selector, tree_from_json
from sf_connector.metadata.catalog import TypeCatalog
from sf_connector.metadata.merge import MergeMode, MetadataMergeEngine
from sf_connector.metadata.xml_codec import SortOrder

# Progress
from sf_connector.progress import EventType, ProgressEvent, ProgressSink, RecordingSink, ProgressTracker

# Connector
from sf_connector.connector import SFConnector
from sf_connector.models import RetrieveResult, DeployResult, SObject

# Utils
from sf_connector.logging import setup_logging
from sf_connector.utils import log_section_header

__version__ = "0.1.0"
__all__ = [
    # Exceptions
    "SalesforceError",
    "SFConnectionError",
    "SFAuthError",
    "SFAPIError",
    "ProcessError",
    "DataRequiredError",
    "OperationNotAllowedError",
    "PathValidationError",
    "FormatError",
    "RetrieveTimeoutError",
    # API
    "ProcessRunner",
    "ProcessResponse",
    "get_sf_auth_info",
    "list_auth_orgs",
    "OrgClient",
    # Metadata
    "MetadataNode",
    "flatten_to_selector",
    "parse_selector",
    "tree_from_json",
    "TypeCatalog",
    "MergeMode",
    "MetadataMergeEngine",
    "SortOrder",
    # Progress
    "EventType",
    "ProgressEvent",
    "ProgressSink",
    "RecordingSink",
    "ProgressTracker",
    # Connector
    "SFConnector",
    "RetrieveResult",
    "DeployResult",
    "SObject",
    # Utils
    "setup_logging",
    "log_section_header",
]
