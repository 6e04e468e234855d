"""
Salesforce CLI Authentication Utilities

Reads authentication details of orgs known to the sf CLI so they can be
reused for REST API calls.
"""

import logging
from typing import Dict, List, Optional

from sf_connector.api.process import ProcessRunner
from sf_connector.exceptions import ProcessError, SFAuthError

logger = logging.getLogger(__name__)

DEFAULT_API_VERSION = "65.0"

ORG_LIST_GROUPS = ('nonScratchOrgs', 'scratchOrgs', 'sandboxes', 'devHubs', 'other')


def get_sf_auth_info(org_alias: Optional[str] = None, runner: Optional[ProcessRunner] = None) -> Dict[str, str]:
    """
    Extract access token and instance URL from the sf CLI session.

    Args:
        org_alias: Optional org alias/username. If None, uses default org.
        runner: ProcessRunner to use (a new one by default)

    Returns:
        Dictionary with keys: access_token, instance_url, org_id, username, api_version

    Raises:
        SFAuthError: If authentication info cannot be retrieved
    """
    runner = runner or ProcessRunner()
    args = ["org", "display"]
    if org_alias:
        args.extend(["--target-org", org_alias])

    logger.info(f"Retrieving auth info for org: {org_alias or 'default'}")

    try:
        response = runner.run(args)
    except ProcessError as e:
        raise SFAuthError(f"SF CLI error: {e}") from e

    result_data = response.result or {}
    auth_info = {
        "access_token": result_data.get("accessToken"),
        "instance_url": result_data.get("instanceUrl"),
        "org_id": result_data.get("id"),
        "username": result_data.get("username"),
        "alias": result_data.get("alias"),
        "api_version": result_data.get("apiVersion", DEFAULT_API_VERSION),
    }

    if not auth_info["access_token"] or not auth_info["instance_url"]:
        raise SFAuthError("Missing access token or instance URL in response")

    logger.info(f"Successfully retrieved auth for: {auth_info['username']}")
    logger.debug(f"Instance URL: {auth_info['instance_url']}")
    return auth_info


def list_auth_orgs(runner: Optional[ProcessRunner] = None) -> List[Dict[str, str]]:
    """
    List every org authorized in the sf CLI.

    Returns:
        One dict per org with alias, username, org_id, instance_url and is_default
    """
    runner = runner or ProcessRunner()
    try:
        response = runner.run(["org", "list"])
    except ProcessError as e:
        raise SFAuthError(f"Unable to list authorized orgs: {e}") from e

    result = response.result or {}
    orgs: List[Dict[str, str]] = []
    seen = set()
    for group in ORG_LIST_GROUPS:
        for org in result.get(group) or []:
            username = org.get("username")
            if not username or username in seen:
                continue
            seen.add(username)
            orgs.append({
                "alias": org.get("alias"),
                "username": username,
                "org_id": org.get("orgId"),
                "instance_url": org.get("instanceUrl"),
                "is_default": bool(org.get("isDefaultUsername")),
            })
    logger.debug(f"Found {len(orgs)} authorized org(s)")
    return orgs
