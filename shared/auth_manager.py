"""
Authentication Manager for the backup management API

Exchanges service-account credentials for an access token and caches it in
memory for the rest of the run, refreshing shortly before it expires.

Usage:
    from shared.auth_manager import TokenManager

    token_mgr = TokenManager(auth_url, client_id, client_secret)
    access_token = token_mgr.get_valid_token()
"""

import logging
import time
from datetime import datetime, timedelta
from typing import Optional

import requests


class TokenManager:
    """Manages service-account tokens with auto-refresh"""

    def __init__(self, auth_url: str, client_id: str, client_secret: str, timeout: int = 30):
        """
        Args:
            auth_url: Session endpoint of the management API
            client_id: Service account client ID
            client_secret: Service account client secret
            timeout: HTTP timeout in seconds
        """
        if not client_id or not client_secret:
            raise ValueError("API client_id and client_secret are required. Set API_CLIENT_ID / API_CLIENT_SECRET.")

        self.auth_url = auth_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.timeout = timeout
        self.logger = logging.getLogger("TokenManager")
        self._access_token: Optional[str] = None
        self._expires_at: Optional[datetime] = None

    def get_valid_token(self) -> str:
        """
        Get a valid access token, generating a new one if needed.

        Returns:
            str: Valid access token
        """
        # 5-minute buffer before expiry
        if self._access_token and self._expires_at:
            if datetime.utcnow() < self._expires_at - timedelta(minutes=5):
                return self._access_token

        self.logger.info("Requesting new API session token")
        return self._generate_new_token()

    def _generate_new_token(self) -> str:
        headers = {
            "accept": "application/json",
            "content-type": "application/json"
        }
        data = {
            "client_id": self.client_id,
            "client_secret": self.client_secret
        }

        response = requests.post(self.auth_url, headers=headers, json=data, timeout=self.timeout)

        # Handle rate limiting
        if response.status_code == 429:
            try:
                retry_after = int(response.headers.get('Retry-After', 60))
            except ValueError:
                retry_after = 60
            self.logger.warning(f"Rate limited, waiting {retry_after} seconds...")
            time.sleep(retry_after)
            response = requests.post(self.auth_url, headers=headers, json=data, timeout=self.timeout)

        if response.status_code != 200:
            raise requests.exceptions.HTTPError(
                f"Token generation failed: {response.status_code} - {response.text}",
                response=response
            )

        tokens = response.json()
        self._access_token = tokens['access_token']
        expires_in = int(tokens.get('expires_in', 24 * 3600))
        self._expires_at = datetime.utcnow() + timedelta(seconds=expires_in)

        self.logger.info("API session token acquired")
        return self._access_token

    def auth_headers(self) -> dict:
        """Request headers carrying a valid bearer token"""
        return {
            "accept": "application/json",
            "Authorization": f"Bearer {self.get_valid_token()}"
        }
