"""Configuration settings for the reference broker server."""

import os

BROKER_HOST = os.environ.get("BROKER_HOST", "0.0.0.0")

BROKER_PORT = int(os.environ.get("BROKER_PORT", "8080"))

BROKER_NODE_ID = os.environ.get("BROKER_NODE_ID", "local-broker")

# Advertised capacity in bytes (default 10 GiB)
BROKER_STORAGE_MAX = int(os.environ.get("BROKER_STORAGE_MAX", str(10 * 1024 * 1024 * 1024)))

# Optional prefix of the CIDs this broker computes; must match the client's hasher
BROKER_CID_PREFIX = os.environ.get("BROKER_CID_PREFIX", "")
