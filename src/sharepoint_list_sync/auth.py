# -*- coding: utf-8 -*-
"""
Microsoft authentication module for SharePoint list sync.

This module handles Azure AD authentication using MSAL (Microsoft Authentication Library)
and exposes it through a small token provider interface: get_token(scopes)
returns a bearer token string or None.
"""

import msal

from .thread_utils import console_log


class StaticTokenProvider:
    """Token provider for callers that already hold a bearer token"""

    def __init__(self, token):
        self.token = token

    def get_token(self, scopes=None):
        return self.token


class MsalTokenProvider:
    """
    Client-credentials token provider backed by MSAL.

    MSAL caches the token in the application object, so repeated calls
    before expiry do not hit Azure AD again.

    Example:
        provider = MsalTokenProvider(tenant_id, client_id, client_secret)
        token = provider.get_token()
        headers = {'Authorization': f"Bearer {token}"}

    Note:
        The app registration needs Sites.ReadWrite.All, plus Sites.Manage.All
        for list and column creation.
    """

    def __init__(self, tenant_id, client_id, client_secret, login_endpoint="login.microsoftonline.com",
                 graph_endpoint="graph.microsoft.com", on_log=None):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.login_endpoint = login_endpoint
        self.graph_endpoint = graph_endpoint
        self.on_log = on_log or console_log
        self._app = None

    def _application(self):
        if self._app is None:
            # Format: https://login.microsoftonline.com/{tenant_id}
            authority_url = f'https://{self.login_endpoint}/{self.tenant_id}'
            self._app = msal.ConfidentialClientApplication(
                authority=authority_url,
                client_id=self.client_id,
                client_credential=self.client_secret
            )
        return self._app

    def get_token(self, scopes=None):
        """
        Acquire an access token for Microsoft Graph.

        Args:
            scopes (list): Scopes to request (default: the '/.default' scope,
                           i.e. every permission granted to the app)

        Returns:
            str: Access token, or None if authentication failed
        """
        scopes = scopes or [f"https://{self.graph_endpoint}/.default"]
        token = self._application().acquire_token_for_client(scopes=scopes)

        # MSAL returns errors in the token dict, not as exceptions
        if "access_token" in token:
            return token["access_token"]

        self._report_failure(token)
        return None

    def _report_failure(self, token):
        error_msg = token.get("error", "unknown_error")
        error_desc = token.get("error_description", "No description provided")
        error_codes = token.get("error_codes", [])
        log = self.on_log

        log("[!] ========================================")
        log("[!] AUTHENTICATION FAILED")
        log("[!] ========================================")

        if "invalid_client" in error_msg or 7000215 in error_codes:
            log("[!] Error: Invalid client credentials")
            log("[!]   1. Verify your CLIENT_ID is correct (check Azure AD app registration)")
            log("[!]   2. Verify your CLIENT_SECRET is correct and hasn't expired")
            log("[!]   3. Ensure you're using the correct TENANT_ID")
        elif "unauthorized_client" in error_msg or 700016 in error_codes:
            log("[!] Error: Application not authorized")
            log("[!]   1. Verify 'Microsoft Graph' permissions Sites.ReadWrite.All and Sites.Manage.All")
            log("[!]   2. Click 'Grant admin consent' in the Azure AD portal")
        elif "invalid_scope" in error_msg or "AADSTS70011" in error_desc:
            log("[!] Error: Invalid scope requested")
            log(f"[!]   1. Verify Graph API endpoint is correct: {self.graph_endpoint}")
            log("[!]   2. For commercial cloud use graph.microsoft.com, for GovCloud graph.microsoft.us")
        elif "invalid_request" in error_msg:
            log("[!] Error: Invalid authentication request")
            log("[!]   1. Verify TENANT_ID format (GUID)")
            log(f"[!]   2. Verify login endpoint is correct: {self.login_endpoint}")
        else:
            log(f"[!] Error: {error_msg}")
            if error_codes:
                log(f"[!]   Error codes: {error_codes}")

        log(f"[!] Technical details: {error_desc}")
        log("[!] ========================================")
