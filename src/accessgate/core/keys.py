"""Shared response keys to avoid magic strings across gateway modules."""

from __future__ import annotations

# Request / response payload keys (camelCase on the wire)
K_CONTENT_IDENTIFIER = "contentIdentifier"
K_ACCESS_TOKEN = "accessToken"
K_HAS_PASSWORD = "hasPassword"
K_EXPIRY_TIME = "expiryTime"
K_ACCESS_COUNT = "accessCount"
K_IS_ACTIVE = "isActive"
K_ATTEMPTED_URLS = "attemptedUrls"
K_ERROR = "error"
K_MESSAGE = "message"
K_STATUS = "status"
K_TIMESTAMP = "timestamp"

# Diagnostic probe keys
K_PROVIDER_PIN_STATUS = "providerPinStatus"
K_GATEWAYS = "gateways"
K_IPFS_STATUS = "ipfsStatus"
K_STATUS_CODE = "statusCode"
K_CONTENT_TYPE = "contentType"
K_CONTENT_LENGTH = "contentLength"
K_DETAILS = "details"
