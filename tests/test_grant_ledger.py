"""Grant ledger: idempotent credits, the double-or-nothing path and store retries."""

import random
from datetime import datetime

import pytest
import pytz
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import (
    GrantKeyConflict,
    GrantNotFound,
    InvalidGrant,
    OutcomeNotFound,
    TransientNetworkFailure,
)
from app.db.store import ProfileStore, UpdatePlan
from app.services import grant_ledger, spin_service
from conftest import grant_count, make_profile

NOW = pytz.utc.localize(datetime(2026, 3, 7, 12, 0))


class TestGrant:
    def test_repeated_key_credits_once(self, store):
        before = make_profile(store)
        results = [grant_ledger.grant(store, "u1", "promo:launch", 250) for _ in range(5)]

        assert [r.created for r in results] == [True, False, False, False, False]
        assert len({r.record.id for r in results}) == 1
        assert store.read_profile("u1").coin_balance == before.coin_balance + 250
        assert grant_count(store) == 1

    def test_key_owned_by_other_user_is_not_returned(self, store):
        make_profile(store, "u1")
        other = make_profile(store, "u2")
        grant_ledger.grant(store, "u1", "ad:abc:spin", 1, kind=grant_ledger.KIND_SPINS)

        with pytest.raises(GrantKeyConflict):
            grant_ledger.grant(store, "u2", "ad:abc:spin", 1, kind=grant_ledger.KIND_SPINS)
        assert store.read_profile("u2") == other
        assert grant_count(store) == 1

    def test_duplicate_returns_original_amount(self, store):
        make_profile(store)
        first = grant_ledger.grant(store, "u1", "promo:x", 100)
        again = grant_ledger.grant(store, "u1", "promo:x", 100)
        assert again.record.amount == first.record.amount
        assert again.record.applied_at == first.record.applied_at

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_is_rejected(self, store, amount):
        before = make_profile(store)
        with pytest.raises(InvalidGrant):
            grant_ledger.grant(store, "u1", "bad", amount)
        assert store.read_profile("u1") == before

    def test_unknown_kind_is_rejected(self, store):
        make_profile(store)
        with pytest.raises(InvalidGrant):
            grant_ledger.grant(store, "u1", "bad", 1, kind="gems")

    def test_balance_cannot_change_without_ledger_insert(self, store):
        make_profile(store)

        def sneaky(profile):
            return UpdatePlan(profile=profile.replace(coin_balance=profile.coin_balance + 1))

        with pytest.raises(ValueError):
            store.atomic_update("u1", sneaky)

    def test_list_grants_newest_first(self, store):
        make_profile(store)
        for key in ("a", "b", "c"):
            grant_ledger.grant(store, "u1", key, 10)
        keys = [g.idempotency_key for g in grant_ledger.list_grants(store, "u1", limit=2)]
        assert keys == ["c", "b"]


class TestDouble:
    def test_double_applies_once(self, store):
        make_profile(store)
        outcome = spin_service.resolve_spin(store, "u1", rng=random.Random(2), now=NOW)
        balance = store.read_profile("u1").coin_balance

        first = grant_ledger.double_outcome(store, "u1", outcome.outcome_id)
        retry = grant_ledger.double_outcome(store, "u1", outcome.outcome_id)

        assert first.created is True
        assert retry.created is False
        assert first.record.idempotency_key == f"{outcome.outcome_id}:double"
        assert store.read_profile("u1").coin_balance == balance + outcome.reward_amount

    def test_unknown_outcome(self, store):
        make_profile(store)
        with pytest.raises(OutcomeNotFound):
            grant_ledger.double_outcome(store, "u1", "missing")

    def test_other_users_outcome(self, store):
        make_profile(store, "u1")
        make_profile(store, "u2")
        outcome = spin_service.resolve_spin(store, "u1", now=NOW)
        with pytest.raises(OutcomeNotFound):
            grant_ledger.double_outcome(store, "u2", outcome.outcome_id)

    def test_missing_base_grant_is_an_error(self, store):
        make_profile(store)
        outcome = spin_service.resolve_spin(store, "u1", now=NOW)
        base = store.get_grant(grant_ledger.spin_key(outcome.outcome_id))
        store.db.delete(base)
        store.db.commit()
        balance = store.read_profile("u1").coin_balance

        with pytest.raises(GrantNotFound):
            grant_ledger.double_outcome(store, "u1", outcome.outcome_id)
        assert store.read_profile("u1").coin_balance == balance


class TestStoreRetry:
    def test_stale_write_is_retried(self, db, monkeypatch):
        store = ProfileStore(db, max_retries=2)
        make_profile(store)
        real_apply = store._apply_once
        calls = []

        def flaky(user_id, fn):
            calls.append(user_id)
            if len(calls) == 1:
                raise StaleDataError("concurrent update")
            return real_apply(user_id, fn)

        monkeypatch.setattr(store, "_apply_once", flaky)
        result = grant_ledger.grant(store, "u1", "retry:1", 10)
        assert result.created is True
        assert len(calls) == 2

    def test_gives_up_as_transient_failure(self, db, monkeypatch):
        store = ProfileStore(db, max_retries=2)
        before = make_profile(store)

        def always_stale(user_id, fn):
            raise StaleDataError("concurrent update")

        monkeypatch.setattr(store, "_apply_once", always_stale)
        with pytest.raises(TransientNetworkFailure) as excinfo:
            grant_ledger.grant(store, "u1", "retry:2", 10)

        assert excinfo.value.retryable is True
        monkeypatch.undo()
        assert store.read_profile("u1") == before
        assert store.get_grant("retry:2") is None
