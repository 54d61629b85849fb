import asyncio
import json

import httpx
import pytest

from app.errors import Forbidden, NotFound, Unavailable, ValidationError
from app.models.vehicle import ListingStatus
from app.services import features
from app.services.prediction import predict_price


def _run(coro):
    return asyncio.run(coro)


def test_prediction_request_and_derived_fields(db, make_user, make_listing):
    v = make_listing(make_user(), status=ListingStatus.APPROVED, brand="toyota", price=1_000_000)
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"predicted_price": 900_000, "confidence": 0.87, "years_ahead": 2})

    result = _run(predict_price(db, v.id, 2, transport=httpx.MockTransport(handler)))

    assert seen["url"].endswith("/predict")
    assert seen["body"]["brand"] == "TOYOTA"
    assert seen["body"]["years_ahead"] == 2
    assert seen["body"]["current_price"] == 1_000_000
    assert result["price_difference"] == -100_000
    assert result["price_change_percentage"] == pytest.approx(-10.0)
    assert result["currency"] == "LKR"
    assert result["market"] == "Sri Lankan"
    assert result["price_trend"] == []
    assert result["timestamp"]
    assert result["vehicle"]["id"] == v.id


def test_downstream_error_is_unavailable_with_details(db, make_user, make_listing):
    v = make_listing(make_user())
    transport = httpx.MockTransport(lambda request: httpx.Response(500, text="model not loaded"))
    with pytest.raises(Unavailable) as exc:
        _run(predict_price(db, v.id, 1, transport=transport))
    assert exc.value.details == "model not loaded"


def test_transport_failure_is_unavailable(db, make_user, make_listing):
    v = make_listing(make_user())

    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(Unavailable):
        _run(predict_price(db, v.id, 1, transport=httpx.MockTransport(handler)))


def test_malformed_response_is_unavailable(db, make_user, make_listing):
    v = make_listing(make_user())
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"price": 1}))
    with pytest.raises(Unavailable):
        _run(predict_price(db, v.id, 1, transport=transport))


def test_input_checks(db, make_user, make_listing):
    bike = make_listing(make_user(), type="motorcycle")
    car = make_listing(make_user())
    untouched = httpx.MockTransport(lambda request: pytest.fail("must not call the service"))

    with pytest.raises(ValidationError):
        _run(predict_price(db, None, 1, transport=untouched))
    with pytest.raises(ValidationError):
        _run(predict_price(db, car.id, 6, transport=untouched))
    with pytest.raises(ValidationError):
        _run(predict_price(db, car.id, -1, transport=untouched))
    with pytest.raises(ValidationError):
        _run(predict_price(db, bike.id, 1, transport=untouched))
    with pytest.raises(NotFound):
        _run(predict_price(db, 31337, 1, transport=untouched))


def test_disabled_flag(db, make_user, make_listing):
    v = make_listing(make_user())
    features.update_features(db, {"price_prediction": False})
    with pytest.raises(Forbidden):
        _run(predict_price(db, v.id, 1))
