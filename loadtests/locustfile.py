"""Marketplace checkout load testing: Locust entry point.

The API must run with demo data seeded (``MARKETPLACE_DEMO_DATA=1``) so the
buyers, sellers and listings the scenarios address exist.

Usage:
    # All scenarios (web UI):
    locust -f loadtests/locustfile.py

    # Stock contention only:
    locust -f loadtests/locustfile.py ScarceStockUser

    # Headless (CI mode):
    locust -f loadtests/locustfile.py CheckoutUser --headless \
           -u 50 -r 5 -t 300s --csv=results/loadtest
"""

import logging
import time

from locust import events

# Import all user classes so Locust discovers them
from loadtests.helpers.response import extract_error_detail
from loadtests.scenarios.checkout import CheckoutUser, ScarceStockUser  # noqa: F401

logger = logging.getLogger("loadtest")


@events.request.add_listener
def on_request(request_type, name, response, exception, **_kw):
    """Log error details for every failed request."""
    if exception:
        logger.error("[EXCEPTION] %s %s: %s", request_type, name, exception)
    elif response is not None and response.status_code >= 400:
        detail = extract_error_detail(response)
        logger.error("[%s] %s %s: %s", response.status_code, request_type, name, detail)


@events.test_start.add_listener
def on_test_start(environment, **_kwargs):
    print(f"\n[LOADTEST] Started at {time.strftime('%H:%M:%S')}")
    print(f"[LOADTEST] Target host: {environment.host}")
    print()


@events.test_stop.add_listener
def on_test_stop(environment, **_kwargs):
    """Sweep sessions left behind by interrupted journeys."""
    print(f"\n[LOADTEST] Stopped at {time.strftime('%H:%M:%S')}")
    if not environment.host:
        return

    import requests

    try:
        resp = requests.post(f"{environment.host}/checkout/maintenance/expire-sessions", timeout=5)
        print(f"[LOADTEST] Expiry sweep: {resp.json()}\n")
    except requests.RequestException as e:
        print(f"[LOADTEST] Could not run expiry sweep: {e}\n")
