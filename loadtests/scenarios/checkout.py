"""Checkout load test scenarios.

Two user types: buyers walking the full multi-seller checkout (cash on
delivery or card), and buyers racing for a listing with only a handful of
units. The second one is expected to see insufficient-stock refusals; what
matters is that the API never oversells.
"""

import random

from locust import HttpUser, SequentialTaskSet, between, task

from loadtests.data_generators import (
    create_session_data,
    personal_address,
    random_buyer,
    scarce_item,
    status_note,
)
from loadtests.helpers.response import extract_error_detail
from loadtests.helpers.state import CheckoutState

# The fake gateway accepts this signature on payment callbacks
WEBHOOK_SIGNATURE = "test-signature"


class CheckoutJourney(SequentialTaskSet):
    """Create session -> Add address -> (Intent -> Confirm | Place) -> Seller confirms."""

    def on_start(self):
        self.state = CheckoutState(
            buyer_id=random_buyer(),
            payment_method=random.choice(["cod", "cod", "credit_card"]),
        )

    @task
    def create_session(self):
        with self.client.post(
            "/checkout/sessions",
            json=create_session_data(self.state.buyer_id, self.state.payment_method),
            catch_response=True,
            name="POST /checkout/sessions",
        ) as resp:
            if resp.status_code == 201:
                self.state.session_id = resp.json()["session_id"]
            else:
                resp.failure(f"Create session failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def view_session(self):
        with self.client.get(
            f"/checkout/sessions/{self.state.session_id}",
            catch_response=True,
            name="GET /checkout/sessions/{id}",
        ) as resp:
            if resp.status_code == 200:
                self.state.seller_ids = [group["seller_id"] for group in resp.json()["seller_groups"]]
            else:
                resp.failure(f"Get session failed: {resp.status_code}")

    @task
    def add_address(self):
        with self.client.put(
            f"/checkout/sessions/{self.state.session_id}",
            json={"delivery_address": personal_address()},
            catch_response=True,
            name="PUT /checkout/sessions/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Update session failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def pay(self):
        if self.state.payment_method == "credit_card":
            self._pay_by_card()
        else:
            self._place_cod_orders()

    def _pay_by_card(self):
        with self.client.post(
            f"/checkout/sessions/{self.state.session_id}/payment-intent",
            catch_response=True,
            name="POST /checkout/sessions/{id}/payment-intent",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Payment intent failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()
            self.state.intent_id = resp.json()["intent_id"]

        with self.client.post(
            f"/checkout/payments/{self.state.intent_id}/confirm",
            headers={"X-Payment-Signature": WEBHOOK_SIGNATURE},
            catch_response=True,
            name="POST /checkout/payments/{ref}/confirm",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_ids = resp.json()["order_ids"]
            else:
                resp.failure(f"Payment confirm failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    def _place_cod_orders(self):
        with self.client.post(
            f"/checkout/sessions/{self.state.session_id}/orders",
            catch_response=True,
            name="POST /checkout/sessions/{id}/orders",
        ) as resp:
            if resp.status_code == 201:
                self.state.order_ids = resp.json()["order_ids"]
            else:
                resp.failure(f"Place orders failed: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def seller_confirms(self):
        for order_id in self.state.order_ids:
            with self.client.get(
                f"/orders/{order_id}",
                params={"user_id": self.state.buyer_id},
                catch_response=True,
                name="GET /orders/{id}",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Get order failed: {resp.status_code}")
                    continue
                seller = resp.json()["seller_id"]

            with self.client.put(
                f"/orders/{order_id}/status",
                json={"new_status": "confirmed", "actor_id": seller, "note": status_note()},
                catch_response=True,
                name="PUT /orders/{id}/status",
            ) as resp:
                if resp.status_code != 200:
                    resp.failure(f"Confirm order failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class ScarceStockJourney(SequentialTaskSet):
    """Reserve the scarce listing -> hold briefly -> cancel."""

    def on_start(self):
        self.state = CheckoutState(buyer_id=random_buyer())

    @task
    def try_reserve(self):
        with self.client.post(
            "/checkout/sessions",
            json={"user_id": self.state.buyer_id, "items": scarce_item()},
            catch_response=True,
            name="POST /checkout/sessions [scarce]",
        ) as resp:
            if resp.status_code == 201:
                self.state.session_id = resp.json()["session_id"]
            elif resp.status_code == 400:
                # Losing the race is the expected outcome for most buyers
                resp.success()
                self.interrupt()
            else:
                resp.failure(f"Unexpected status: {resp.status_code}: {extract_error_detail(resp)}")
                self.interrupt()

    @task
    def release(self):
        with self.client.delete(
            f"/checkout/sessions/{self.state.session_id}",
            params={"reason": "load_test"},
            catch_response=True,
            name="DELETE /checkout/sessions/{id}",
        ) as resp:
            if resp.status_code != 200:
                resp.failure(f"Cancel failed: {resp.status_code}: {extract_error_detail(resp)}")

    @task
    def done(self):
        self.interrupt()


class CheckoutUser(HttpUser):
    tasks = [CheckoutJourney]
    wait_time = between(0.5, 2.0)
    weight = 4


class ScarceStockUser(HttpUser):
    tasks = [ScarceStockJourney]
    wait_time = between(0.1, 0.5)
    weight = 1
