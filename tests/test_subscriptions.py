import datetime as dt

import pytest

from app.errors import Conflict, Forbidden, NotFound, ValidationError
from app.models.subscription import Subscription, SubscriptionStatus
from app.services import features, subscriptions
from app.utils.clock import add_months, utcnow


def _subscription(db, user, *, status=SubscriptionStatus.ACTIVE, days_left=10, post_count=1, created_at=None):
    now = utcnow()
    sub = Subscription(
        id=f"sub-test-{post_count}-{days_left}-{status}",
        user_id=user.id,
        plan_type="pro",
        status=status,
        start_date=now - dt.timedelta(days=5),
        end_date=now + dt.timedelta(days=days_left),
        price=1000,
        post_count=post_count,
        created_at=created_at or now,
    )
    db.add(sub)
    db.commit()
    return sub


# ---------- effective status ----------
def test_effective_status_derivation(make_user):
    now = utcnow()
    sub = Subscription(status=SubscriptionStatus.ACTIVE, end_date=now + dt.timedelta(days=1))
    assert subscriptions.effective_status(sub, now) == "active"

    sub.status = None
    assert subscriptions.effective_status(sub, now) == "active"

    sub.end_date = now - dt.timedelta(seconds=1)
    assert subscriptions.effective_status(sub, now) == "expired"

    sub.status = SubscriptionStatus.CANCELLED
    assert subscriptions.effective_status(sub, now) == "cancelled"


def test_add_months_clamps_day():
    assert add_months(dt.datetime(2024, 1, 31, 10, 0), 1) == dt.datetime(2024, 2, 29, 10, 0)
    assert add_months(dt.datetime(2023, 1, 31), 1) == dt.datetime(2023, 2, 28)
    assert add_months(dt.datetime(2023, 12, 15), 1) == dt.datetime(2024, 1, 15)


def test_expired_subscription_reported_inactive_without_rewrite(db, make_user):
    user = make_user()
    sub = _subscription(db, user, days_left=-1)

    status = subscriptions.get_status(db, user.id)
    assert status["active"] is False
    assert status["subscription"]["effective_status"] == "expired"

    db.expire_all()
    assert db.get(Subscription, sub.id).status == SubscriptionStatus.ACTIVE
    assert subscriptions.get_usable_subscription(db, user.id) is None


def test_status_without_subscriptions(db, make_user):
    assert subscriptions.get_status(db, make_user().id) == {"active": False, "subscription": None}


def test_null_status_counts_as_usable(db, make_user):
    user = make_user()
    sub = _subscription(db, user, status=None)
    assert subscriptions.get_usable_subscription(db, user.id).id == sub.id


# ---------- purchase ----------
def test_purchase_spans_one_month_and_snapshots_plan(db, make_user, make_plan):
    user = make_user()
    plan = make_plan(price=1000, post_count=3)

    sub = subscriptions.purchase(db, user.id, plan_id=plan.id)
    assert sub.end_date == add_months(sub.start_date, 1)
    assert sub.status == SubscriptionStatus.ACTIVE
    assert sub.post_count == 3
    assert sub.payment_method == "card"
    assert sub.transaction_id.startswith("txn-")

    plan.price = 5000
    plan.post_count = 10
    db.commit()
    db.refresh(sub)
    assert float(sub.price) == 1000
    assert sub.post_count == 3


def test_purchase_conflicts_with_usable_subscription(db, make_user, make_plan):
    user = make_user()
    plan = make_plan()
    subscriptions.purchase(db, user.id, plan_id=plan.id)
    with pytest.raises(Conflict):
        subscriptions.purchase(db, user.id, plan_id=plan.id)


def test_purchase_allowed_after_cancel(db, make_user, make_plan):
    user = make_user()
    plan = make_plan()
    subscriptions.purchase(db, user.id, plan_id=plan.id)
    subscriptions.cancel(db, user.id)
    sub = subscriptions.purchase(db, user.id, plan_type="PRO")
    assert sub.status == SubscriptionStatus.ACTIVE


def test_purchase_by_type_picks_cheapest_active_plan(db, make_user, make_plan):
    make_plan(name="Pro Plus", price=3000)
    cheap = make_plan(name="Pro Lite", price=500, post_count=2)
    make_plan(name="Pro Old", price=100, is_active=False)

    sub = subscriptions.purchase(db, make_user().id, plan_type="pro")
    assert float(sub.price) == float(cheap.price)
    assert sub.post_count == 2


def test_purchase_unknown_or_inactive_plan(db, make_user, make_plan):
    user = make_user()
    inactive = make_plan(is_active=False)
    with pytest.raises(NotFound):
        subscriptions.purchase(db, user.id, plan_id=inactive.id)
    with pytest.raises(NotFound):
        subscriptions.purchase(db, user.id, plan_type="enterprise")
    with pytest.raises(ValidationError):
        subscriptions.purchase(db, user.id)


def test_purchase_refused_when_flag_disabled(db, make_user, make_plan):
    plan = make_plan()
    features.update_features(db, {"pro_plan_activation": False})
    with pytest.raises(Forbidden):
        subscriptions.purchase(db, make_user().id, plan_id=plan.id)


# ---------- cancel ----------
def test_cancel_requires_active_unexpired(db, make_user):
    user = make_user()
    with pytest.raises(NotFound):
        subscriptions.cancel(db, user.id)

    _subscription(db, user, days_left=-2)
    with pytest.raises(NotFound):
        subscriptions.cancel(db, user.id)


def test_cancel_sets_cancelled_at(db, make_user, make_plan):
    user = make_user()
    subscriptions.purchase(db, user.id, plan_id=make_plan().id)
    sub = subscriptions.cancel(db, user.id)
    assert sub.status == SubscriptionStatus.CANCELLED
    assert sub.cancelled_at is not None
    assert subscriptions.get_status(db, user.id)["active"] is False


# ---------- post credits ----------
def test_consume_post_credit_never_goes_negative(db, make_user):
    user = make_user()
    sub = _subscription(db, user, post_count=1)

    assert subscriptions.consume_post_credit(db, sub.id) is True
    assert subscriptions.consume_post_credit(db, sub.id) is False
    db.commit()

    db.expire_all()
    stored = db.get(Subscription, sub.id)
    assert stored.post_count == 0
    assert stored.status == SubscriptionStatus.CANCELLED
    assert stored.cancelled_at is not None


def test_consume_post_credit_keeps_subscription_open_while_credits_left(db, make_user):
    user = make_user()
    sub = _subscription(db, user, post_count=2)
    assert subscriptions.consume_post_credit(db, sub.id) is True
    db.commit()

    db.expire_all()
    stored = db.get(Subscription, sub.id)
    assert stored.post_count == 1
    assert stored.status == SubscriptionStatus.ACTIVE


def test_premium_user_ids(db, make_user):
    active, expired, nobody = make_user(), make_user(), make_user()
    _subscription(db, active)
    _subscription(db, expired, days_left=-1)
    assert subscriptions.premium_user_ids(db, [active.id, expired.id, nobody.id]) == {active.id}


# ---------- plans ----------
def test_create_plan_validation_and_duplicates(db):
    plan = subscriptions.create_plan(db, {"name": "Gold", "plan_type": "PRO", "price": 10, "post_count": 5})
    assert plan.plan_type == "pro"

    with pytest.raises(Conflict):
        subscriptions.create_plan(db, {"name": "Gold", "plan_type": "pro", "price": 1, "post_count": 1})
    with pytest.raises(ValidationError) as exc:
        subscriptions.create_plan(db, {"name": "Bad", "plan_type": "pro", "price": -1, "post_count": 1})
    assert exc.value.field == "price"
    with pytest.raises(ValidationError):
        subscriptions.create_plan(db, {"plan_type": "pro", "price": 1, "post_count": 1})
    for bad in ("nan", "inf"):
        with pytest.raises(ValidationError) as exc:
            subscriptions.create_plan(db, {"name": "Odd", "plan_type": "pro", "price": bad, "post_count": 1})
        assert exc.value.field == "price"


def test_update_plan_is_partial(db, make_plan):
    plan = make_plan(price=1000, post_count=1)
    updated = subscriptions.update_plan(db, plan.id, {"post_count": 4, "name": ""})
    assert updated.post_count == 4
    assert updated.name == "Pro"
    assert float(updated.price) == 1000
    with pytest.raises(ValidationError):
        subscriptions.update_plan(db, plan.id, {"price": float("inf")})


def test_delete_plan_blocked_by_usable_subscriptions(db, make_user, make_plan):
    plan = make_plan()
    user = make_user()
    subscriptions.purchase(db, user.id, plan_id=plan.id)
    with pytest.raises(Conflict):
        subscriptions.delete_plan(db, plan.id)

    subscriptions.cancel(db, user.id)
    subscriptions.delete_plan(db, plan.id)
    assert subscriptions.list_plans(db, active_only=False) == []


def test_admin_list_subscriptions_display_status(db, make_user):
    user = make_user(name="Nimal")
    _subscription(db, user, days_left=-1)
    rows = subscriptions.admin_list_subscriptions(db)
    assert rows[0]["effective_status"] == "expired"
    assert rows[0]["user"]["name"] == "Nimal"
