import logging
import os
from typing import Any, Dict

import requests

logger = logging.getLogger(__name__)


def notify_order(payload: Dict[str, Any]) -> bool:
    """POST a finalized order to NOTIFY_URL.

    Runs as a background task after the response is sent. Never raises and
    never retries; returns whether the webhook accepted the payload.
    """
    url = os.getenv("NOTIFY_URL")
    if not url:
        logger.debug("NOTIFY_URL not set, skipping order notification")
        return False
    timeout = float(os.getenv("NOTIFY_TIMEOUT", "5"))
    try:
        resp = requests.post(url, json=payload, timeout=timeout)
        resp.raise_for_status()
    except requests.RequestException as e:
        logger.error("Notify failed for order %s: %s", payload.get("order_id"), e)
        return False
    return True
