"""Salesforce API and sf CLI interactions"""
from sf_connector.api.process import ProcessRunner, ProcessResponse
from sf_connector.api.sf_auth import get_sf_auth_info, list_auth_orgs
from sf_connector.api.sf_client import OrgClient
from sf_connector.exceptions import SFAuthError, SFAPIError

__all__ = [
    "ProcessRunner",
    "ProcessResponse",
    "get_sf_auth_info",
    "list_auth_orgs",
    "OrgClient",
    "SFAuthError",
    "SFAPIError",
]
