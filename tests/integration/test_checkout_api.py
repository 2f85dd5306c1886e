"""Integration tests for the checkout HTTP surface."""

from decimal import Decimal

import pytest

TEA = {"item_id": "tea", "name": "Tea", "unit_price": "25", "vendor_id": "v1"}


async def _add_tea(client, quantity=2):
    response = await client.post("/cart/lines", json={**TEA, "quantity": quantity})
    assert response.status_code == 201, response.text
    return response.json()


def _callback(order_ref, payment_ref="pay_http_1"):
    return {
        "razorpay_payment_id": payment_ref,
        "razorpay_order_id": order_ref,
        "razorpay_signature": "sig_http",
    }


# ---------------------------------------------------------------------------
# Cart
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_health(checkout_client):
    response = await checkout_client.get("/health")

    assert response.status_code == 200
    assert response.json()["service"] == "checkout"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_prices_lines(checkout_client):
    data = await _add_tea(checkout_client)

    assert Decimal(data["subtotal"]) == Decimal("50")
    assert Decimal(data["tax"]) == Decimal("2.50")
    assert Decimal(data["total"]) == Decimal("52.50")
    assert data["lines"][0]["quantity"] == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_quantity_update_and_removal(checkout_client):
    await _add_tea(checkout_client)

    response = await checkout_client.put("/cart/lines/tea", json={"quantity": 5})
    assert response.json()["item_count"] == 5

    response = await checkout_client.put("/cart/lines/tea", json={"quantity": 0})
    assert response.json()["lines"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_updating_unknown_line_is_404(checkout_client):
    response = await checkout_client.put("/cart/lines/coffee", json={"quantity": 1})

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "LineNotFound"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sub_paisa_price_is_422(checkout_client):
    response = await checkout_client.post(
        "/cart/lines", json={**TEA, "unit_price": "10.333", "quantity": 1}
    )

    assert response.status_code == 422
    assert (await checkout_client.get("/cart")).json()["lines"] == []


# ---------------------------------------------------------------------------
# Food card checkout
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_food_card_checkout_returns_order(checkout_client):
    await _add_tea(checkout_client)

    response = await checkout_client.post("/checkout", json={"method": "FOOD_CARD"})

    assert response.status_code == 201, response.text
    order = response.json()
    assert order["order_number"] == "A1001"
    assert Decimal(order["total"]) == Decimal("52.50")

    balance = (await checkout_client.get("/wallet/balance")).json()
    assert Decimal(balance["amount"]) == Decimal("147.50")
    cart = (await checkout_client.get("/cart")).json()
    assert cart["lines"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_food_card_checkout_insufficient_funds(checkout_client):
    await _add_tea(checkout_client, quantity=10)

    response = await checkout_client.post("/checkout", json={"method": "FOOD_CARD"})

    assert response.status_code == 402
    detail = response.json()["detail"]
    assert detail["error"] == "InsufficientFunds"
    assert detail["retryable"] is True
    assert "intent_id" not in detail


@pytest.mark.asyncio
@pytest.mark.integration
async def test_empty_cart_checkout_is_400(checkout_client):
    response = await checkout_client.post("/checkout", json={"method": "FOOD_CARD"})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "EmptyCart"


# ---------------------------------------------------------------------------
# Gateway checkout
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_checkout_round_trip(checkout_client, backend):
    await _add_tea(checkout_client)

    started = await checkout_client.post("/checkout", json={"method": "RAZORPAY"})
    assert started.status_code == 202, started.text
    pending = started.json()
    assert pending["intent"]["status"] == "AWAITING_GATEWAY"
    assert pending["amount_minor_units"] == 5250
    assert pending["public_key"] == "rzp_test_key"

    current = await checkout_client.get("/checkout/current")
    assert current.json()["status"] == "AWAITING_GATEWAY"

    response = await checkout_client.post(
        "/checkout/gateway/success", json=_callback(pending["order_ref"])
    )

    assert response.status_code == 201, response.text
    assert response.json()["payment_intent_id"] == pending["intent"]["intent_id"]
    assert len(backend.verify_calls) == 1

    history = (await checkout_client.get("/history")).json()
    assert history["total_elements"] == 1
    assert history["content"][0]["status"] == "SUCCESS"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_gateway_dismiss_cancels(checkout_client):
    await _add_tea(checkout_client)
    await checkout_client.post("/checkout", json={"method": "RAZORPAY"})

    response = await checkout_client.post("/checkout/gateway/dismiss")

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "GatewayCancelled"
    current = (await checkout_client.get("/checkout/current")).json()
    assert current["status"] == "CANCELLED"
    cart = (await checkout_client.get("/cart")).json()
    assert cart["item_count"] == 2


@pytest.mark.asyncio
@pytest.mark.integration
async def test_second_checkout_while_modal_open_is_409(checkout_client):
    await _add_tea(checkout_client)
    await checkout_client.post("/checkout", json={"method": "RAZORPAY"})

    response = await checkout_client.post("/checkout", json={"method": "RAZORPAY"})

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "CheckoutInProgress"
    await checkout_client.post("/checkout/gateway/dismiss")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_cart_changes_refused_while_modal_open(checkout_client):
    await _add_tea(checkout_client)
    pending = (await checkout_client.post("/checkout", json={"method": "RAZORPAY"})).json()

    coffee = {"item_id": "coffee", "name": "Coffee", "unit_price": "30", "quantity": 1}
    added = await checkout_client.post("/cart/lines", json=coffee)
    cleared = await checkout_client.delete("/cart")

    assert added.status_code == 409
    assert added.json()["detail"]["error"] == "CheckoutInProgress"
    assert cleared.status_code == 409

    response = await checkout_client.post(
        "/checkout/gateway/success", json=_callback(pending["order_ref"])
    )
    assert response.status_code == 201
    assert [line["item_id"] for line in response.json()["lines"]] == ["tea"]
    assert (await checkout_client.post("/cart/lines", json=coffee)).status_code == 201


@pytest.mark.asyncio
@pytest.mark.integration
async def test_callback_with_nothing_open_is_ignored(checkout_client, backend):
    response = await checkout_client.post(
        "/checkout/gateway/success", json=_callback("order_stale")
    )

    assert response.status_code == 409
    assert backend.verify_calls == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_callback_for_another_order_is_ignored(checkout_client, backend):
    await _add_tea(checkout_client)
    await checkout_client.post("/checkout", json={"method": "RAZORPAY"})

    response = await checkout_client.post(
        "/checkout/gateway/success", json=_callback("order_from_last_week")
    )

    assert response.status_code == 409
    assert backend.verify_calls == []
    current = (await checkout_client.get("/checkout/current")).json()
    assert current["status"] == "AWAITING_GATEWAY"
    await checkout_client.post("/checkout/gateway/dismiss")


@pytest.mark.asyncio
@pytest.mark.integration
async def test_rejected_signature_is_402(checkout_client, backend):
    backend.verify_result = False
    await _add_tea(checkout_client)
    pending = (await checkout_client.post("/checkout", json={"method": "RAZORPAY"})).json()

    response = await checkout_client.post(
        "/checkout/gateway/success", json=_callback(pending["order_ref"])
    )

    assert response.status_code == 402
    assert response.json()["detail"]["error"] == "VerificationFailed"
    assert backend.orders == {}


# ---------------------------------------------------------------------------
# Paid but not recorded
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_unrecorded_order_surfaces_and_retries(checkout_client, backend):
    backend.order_failures = 1
    await _add_tea(checkout_client)

    response = await checkout_client.post("/checkout", json={"method": "FOOD_CARD"})

    assert response.status_code == 502
    detail = response.json()["detail"]
    assert detail["error"] == "PaidOrderNotRecorded"
    intent_id = detail["intent_id"]

    unrecorded = (await checkout_client.get("/checkout/unrecorded")).json()
    assert [u["intent_id"] for u in unrecorded] == [intent_id]

    retried = await checkout_client.post(f"/checkout/unrecorded/{intent_id}/retry")

    assert retried.status_code == 200, retried.text
    assert retried.json()["payment_intent_id"] == intent_id
    assert len(backend.orders) == 1
    statuses = [e["status"] for e in (await checkout_client.get("/history")).json()["content"]]
    assert statuses == ["SUCCESS", "PENDING"]


@pytest.mark.asyncio
@pytest.mark.integration
async def test_retry_for_unknown_intent_is_404(checkout_client):
    response = await checkout_client.post("/checkout/unrecorded/nope/retry")

    assert response.status_code == 404


# ---------------------------------------------------------------------------
# Wallet
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_top_up_through_gateway(checkout_client):
    started = await checkout_client.post("/wallet/top-up", json={"amount": "500"})
    assert started.status_code == 202, started.text
    pending = started.json()
    assert pending["intent"]["purpose"] == "BALANCE_TOPUP"

    response = await checkout_client.post(
        "/checkout/gateway/success", json=_callback(pending["order_ref"])
    )

    assert response.status_code == 201, response.text
    assert Decimal(response.json()["amount"]) == Decimal("700")


@pytest.mark.asyncio
@pytest.mark.integration
@pytest.mark.parametrize("amount", ["5", "20000"])
async def test_top_up_outside_limits_is_400(checkout_client, amount):
    response = await checkout_client.post("/wallet/top-up", json={"amount": amount})

    assert response.status_code == 400
    assert response.json()["detail"]["error"] == "InvalidTopUpAmount"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_top_up_with_food_card_is_400(checkout_client):
    response = await checkout_client.post(
        "/wallet/top-up", json={"amount": "100", "method": "FOOD_CARD"}
    )

    assert response.status_code == 400


@pytest.mark.asyncio
@pytest.mark.integration
async def test_balance_refresh(checkout_client, backend):
    backend.balance = Decimal("350")

    response = await checkout_client.post("/wallet/balance/refresh")

    assert response.status_code == 200
    assert Decimal(response.json()["amount"]) == Decimal("350")


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_history_pages(checkout_client):
    for _ in range(3):
        await _add_tea(checkout_client, quantity=1)
        response = await checkout_client.post("/checkout", json={"method": "FOOD_CARD"})
        assert response.status_code == 201

    page = (await checkout_client.get("/history", params={"page": 1, "size": 2})).json()

    assert page["total_elements"] == 3
    assert page["total_pages"] == 2
    assert len(page["content"]) == 1
    assert page["content"][0]["related_order_number"] == "A1001"


@pytest.mark.asyncio
@pytest.mark.integration
async def test_history_rejects_bad_page_size(checkout_client):
    response = await checkout_client.get("/history", params={"size": 0})

    assert response.status_code == 422


# ---------------------------------------------------------------------------
# Sign-out
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sign_out_starts_a_fresh_cart(checkout_client):
    await _add_tea(checkout_client)

    response = await checkout_client.post("/session/sign-out")

    assert response.status_code == 204
    assert (await checkout_client.get("/cart")).json()["lines"] == []


@pytest.mark.asyncio
@pytest.mark.integration
async def test_sign_out_while_modal_open_is_409(checkout_client):
    await _add_tea(checkout_client)
    await checkout_client.post("/checkout", json={"method": "RAZORPAY"})

    response = await checkout_client.post("/session/sign-out")

    assert response.status_code == 409
    await checkout_client.post("/checkout/gateway/dismiss")
