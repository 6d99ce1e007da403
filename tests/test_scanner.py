import uuid
from datetime import timedelta

from sqlalchemy import select, func

from cart_recovery.data.models import AbandonedCartModel, CartSnapshotModel, PromotionCodeModel, PromotionCampaignModel
from cart_recovery.data.models.abandoned_cart import STATUS_ACTIVE, STATUS_EXPIRED
from cart_recovery.domain.schemas import ReflagPolicy, as_utc
from cart_recovery.repos.cart_repo import CartRepo
from cart_recovery.services.promotion_service import PromotionService
from cart_recovery.services.recorder import AbandonmentRecorder
from cart_recovery.services.scanner import CartScanner
from cart_recovery.services.sweeper import LifecycleSweeper


def _scanner(db, provider=None, policy=ReflagPolicy.NEVER):
    promotions = PromotionService(db, provider) if provider else None
    return CartScanner(db, AbandonmentRecorder(db, promotions), reflag_policy=policy)


def _count(db, model):
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def _expire_all_records(db):
    db.execute(AbandonedCartModel.__table__.update().values(status=STATUS_EXPIRED))
    db.commit()
    #bulk update bypasses the identity map
    db.expire_all()


def test_guest_cart_is_recorded_without_promotion(db, now, provider, make_product, add_line):
    mug = make_product(name="Mug", price_cents=1000)
    cap = make_product(name="Cap", price_cents=500)
    add_line(mug, quantity=1, session_id="sess-1")
    add_line(cap, quantity=2, session_id="sess-1")

    summary = _scanner(db, provider).scan(now)

    assert summary.recorded == 1
    assert summary.promotions_issued == 0
    cart = db.execute(select(AbandonedCartModel)).scalar_one()
    assert cart.session_id == "sess-1"
    assert cart.item_count == 2
    assert cart.cart_value_cents == 2000
    assert cart.status == STATUS_ACTIVE
    assert cart.promotion_code_id is None
    assert cart.customer_email is None
    assert _count(db, CartSnapshotModel) == 2
    assert provider.codes == []


def test_first_time_buyer_gets_a_single_use_code(db, now, provider, make_user, make_product, add_line):
    user = make_user(email="first@buyer.com", full_name="First Buyer")
    mug = make_product(name="Mug", price_cents=1000)
    cap = make_product(name="Cap", price_cents=500)
    add_line(mug, quantity=1, user_id=user.id)
    add_line(cap, quantity=2, user_id=user.id)

    summary = _scanner(db, provider).scan(now)

    assert summary.recorded == 1
    assert summary.promotions_issued == 1
    cart = db.execute(select(AbandonedCartModel)).scalar_one()
    assert cart.customer_email == "first@buyer.com"
    assert cart.customer_name == "First Buyer"
    assert cart.promotion_code_id is not None

    code = db.get(PromotionCodeModel, cart.promotion_code_id)
    assert code.email == "first@buyer.com"
    assert code.user_id == user.id
    assert code.max_uses == 1
    assert code.current_uses == 0
    assert code.code.startswith("CART5-")
    assert abs(as_utc(code.expires_at) - (now + timedelta(days=10))) < timedelta(minutes=1)
    assert provider.codes[0]["email"] == "first@buyer.com"
    assert _count(db, CartSnapshotModel) == 2


def test_returning_customer_gets_no_code(db, now, provider, make_user, make_product, make_order, add_line):
    user = make_user(email="Repeat@Buyer.com")
    make_order(user_id=None, email="repeat@buyer.com", status="delivered")
    add_line(make_product(), user_id=user.id)

    summary = _scanner(db, provider).scan(now)

    assert summary.recorded == 1
    assert summary.promotions_issued == 0
    assert provider.codes == []
    assert _count(db, PromotionCodeModel) == 0


def test_cancelled_orders_do_not_count_as_purchases(db, now, provider, make_user, make_product, make_order, add_line):
    user = make_user()
    make_order(user_id=user.id, status="cancelled")
    make_order(user_id=user.id, status="failed")
    add_line(make_product(), user_id=user.id)

    summary = _scanner(db, provider).scan(now)

    assert summary.promotions_issued == 1


def test_no_code_without_a_configured_provider(db, now, make_user, make_product, add_line):
    user = make_user()
    add_line(make_product(), user_id=user.id)

    summary = _scanner(db, provider=None).scan(now)

    assert summary.recorded == 1
    assert summary.promotions_issued == 0


def test_unknown_user_is_recorded_anonymously(db, now, provider, make_product, add_line):
    add_line(make_product(), user_id="ghost")

    summary = _scanner(db, provider).scan(now)

    cart = db.execute(select(AbandonedCartModel)).scalar_one()
    assert summary.recorded == 1
    assert cart.user_id == "ghost"
    assert cart.customer_email is None
    assert cart.promotion_code_id is None


def test_provider_failure_keeps_the_cart_without_a_code(db, now, make_user, make_product, add_line, fake_provider_cls):
    user = make_user()
    add_line(make_product(), user_id=user.id)

    summary = _scanner(db, fake_provider_cls(fail_codes=True)).scan(now)

    cart = db.execute(select(AbandonedCartModel)).scalar_one()
    assert summary.recorded == 1
    assert summary.failed == 0
    assert cart.promotion_code_id is None
    assert _count(db, PromotionCodeModel) == 0
    assert _count(db, CartSnapshotModel) == 1


def test_second_scan_records_nothing_new(db, now, provider, make_user, make_product, add_line):
    user = make_user()
    mug = make_product()
    add_line(mug, session_id="sess-1")
    add_line(mug, user_id=user.id)
    scanner = _scanner(db, provider)

    first = scanner.scan(now)
    second = scanner.scan(now + timedelta(minutes=5))

    assert first.recorded == 2
    assert second.recorded == 0
    assert second.skipped == 2
    assert _count(db, AbandonedCartModel) == 2
    assert len(provider.codes) == 1


def test_fresh_carts_are_left_alone(db, now, make_product, add_line):
    add_line(make_product(), session_id="sess-1", age=timedelta(minutes=10))

    summary = _scanner(db).scan(now)

    assert summary.processed == 0
    assert _count(db, AbandonedCartModel) == 0


def test_expired_record_still_blocks_by_default(db, now, make_product, add_line):
    add_line(make_product(), session_id="sess-1")
    _scanner(db).scan(now)
    _expire_all_records(db)

    summary = _scanner(db).scan(now)

    assert summary.skipped == 1
    assert _count(db, AbandonedCartModel) == 1


def test_after_expiry_policy_reflags_a_cart_changed_since(db, now, make_product, add_line):
    mug = make_product()
    add_line(mug, session_id="sess-1", age=timedelta(days=40))
    _scanner(db, policy=ReflagPolicy.AFTER_EXPIRY).scan(now - timedelta(days=39))
    _expire_all_records(db)

    unchanged = _scanner(db, policy=ReflagPolicy.AFTER_EXPIRY).scan(now)
    assert unchanged.skipped == 1

    add_line(mug, session_id="sess-1", age=timedelta(hours=1))
    changed = _scanner(db, policy=ReflagPolicy.AFTER_EXPIRY).scan(now)

    assert changed.recorded == 1
    statuses = sorted(db.execute(select(AbandonedCartModel.status)).scalars().all())
    assert statuses == [STATUS_ACTIVE, STATUS_EXPIRED]


def test_after_expiry_policy_still_blocks_on_an_active_record(db, now, make_product, add_line):
    add_line(make_product(), session_id="sess-1")
    scanner = _scanner(db, policy=ReflagPolicy.AFTER_EXPIRY)
    scanner.scan(now)

    assert scanner.scan(now).skipped == 1


def test_one_failing_aggregate_does_not_stop_the_scan(db, now, make_product, add_line, monkeypatch):
    mug = make_product()
    add_line(mug, session_id="sess-a")
    add_line(mug, session_id="sess-b")
    add_line(mug, session_id="sess-c")
    scanner = _scanner(db)
    original = scanner.recorder.record

    def flaky(aggregate):
        if aggregate.session_id == "sess-b":
            raise RuntimeError("boom")
        return original(aggregate)

    monkeypatch.setattr(scanner.recorder, "record", flaky)

    summary = scanner.scan(now)

    assert summary.processed == 3
    assert summary.recorded == 2
    assert summary.failed == 1
    sessions = sorted(db.execute(select(AbandonedCartModel.session_id)).scalars().all())
    assert sessions == ["sess-a", "sess-c"]


def test_aggregate_query_failure_aborts_the_cycle(db, now, monkeypatch):
    from sqlalchemy.exc import OperationalError

    def broken(self, cutoff):
        raise OperationalError("SELECT", {}, Exception("database is gone"))

    monkeypatch.setattr(CartRepo, "find_stale_cart_aggregates", broken)

    summary = _scanner(db).scan(now)

    assert summary.aborted is True
    assert summary.processed == 0


def test_concurrent_insert_is_treated_as_already_recorded(db, now, make_product, add_line):
    add_line(make_product(), session_id="sess-1")
    scanner = _scanner(db)
    scanner.scan(now)

    aggregate = CartRepo(db).find_stale_cart_aggregates(now - timedelta(minutes=30))[0]
    assert scanner.recorder.record(aggregate) is None
    assert _count(db, AbandonedCartModel) == 1


def test_disabled_campaign_creates_no_stripe_coupons(db, now, provider, make_user, make_product, add_line):
    db.add(PromotionCampaignModel(
        id="camp-1",
        name="Abandoned Cart Recovery - 5% Off",
        discount_type="percentage",
        discount_value=5,
        active=False,
    ))
    db.commit()
    mug = make_product()
    for _ in range(3):
        add_line(mug, user_id=make_user(email=f"{uuid.uuid4().hex[:6]}@buyer.com").id)

    summary = _scanner(db, provider).scan(now)

    assert summary.recorded == 3
    assert summary.promotions_issued == 0
    assert provider.campaigns == []
    assert _count(db, CartSnapshotModel) == 3


def test_untouched_cart_gets_one_code_across_sweeps(db, now, provider, make_user, make_product, add_line):
    user = make_user()
    add_line(make_product(), user_id=user.id, age=timedelta(days=60))

    for day in range(60):
        moment = now + timedelta(days=day)
        _scanner(db, provider).scan(moment)
        LifecycleSweeper(db).sweep(moment)
        db.expire_all()

    assert len(provider.codes) == 1
    assert _count(db, PromotionCodeModel) == 1
    assert _count(db, AbandonedCartModel) == 0


def test_carts_past_the_retention_window_are_not_recorded(db, now, provider, make_user, make_product, add_line):
    user = make_user()
    add_line(make_product(), user_id=user.id, age=timedelta(days=100))

    summary = _scanner(db, provider).scan(now)

    assert summary.processed == 1
    assert summary.skipped == 1
    assert _count(db, AbandonedCartModel) == 0
    assert provider.codes == []


def test_unexpected_promotion_error_still_snapshots(db, now, provider, make_user, make_product, add_line, monkeypatch):
    user = make_user()
    add_line(make_product(name="Mug"), user_id=user.id)
    add_line(make_product(name="Cap"), user_id=user.id)

    def broken(self, email, user_id=None):
        raise KeyError("coupon")

    monkeypatch.setattr(PromotionService, "issue_code", broken)

    summary = _scanner(db, provider).scan(now)

    cart = db.execute(select(AbandonedCartModel)).scalar_one()
    assert summary.recorded == 1
    assert summary.failed == 0
    assert cart.promotion_code_id is None
    assert _count(db, CartSnapshotModel) == 2
