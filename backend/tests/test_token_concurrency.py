"""并发校验测试

多个接待台同时扫描同一个二维码时，使用次数不能超过上限。
"""
from collections import Counter
from concurrent.futures import ThreadPoolExecutor
from datetime import timedelta

from mivilla.services import errors
from mivilla.services.payload_codec import encode_payload
from mivilla.services.token_issuer import TokenIssuer
from mivilla.services.token_validator import TokenValidator
from mivilla.utils.time import utc_now
from tests.conftest import ADMIN_T1, RECEPTION_T1, UNIT_101


def _race(store, raw, attempts):
    validator = TokenValidator(store)
    with ThreadPoolExecutor(max_workers=attempts) as pool:
        return list(pool.map(lambda _: validator.validate(raw, RECEPTION_T1), range(attempts)))


def test_single_use_token_consumed_once(store):
    payload = TokenIssuer(store).issue(ADMIN_T1, UNIT_101, 1, utc_now() + timedelta(hours=1))

    results = _race(store, encode_payload(payload), 10)

    codes = Counter(r.code for r in results)
    assert codes[errors.OK] == 1
    assert codes[errors.QUOTA_EXHAUSTED] == 9
    assert store.partition("t1").get(payload.id).current_uses == 1


def test_quota_never_exceeded(store):
    payload = TokenIssuer(store).issue(ADMIN_T1, UNIT_101, 3, utc_now() + timedelta(hours=1))

    results = _race(store, encode_payload(payload), 12)

    granted = [r for r in results if r.valid]
    assert len(granted) == 3
    assert sorted(r.remaining_uses for r in granted) == [0, 1, 2]
    assert store.partition("t1").get(payload.id).current_uses == 3


def test_different_tokens_independent(store):
    issuer = TokenIssuer(store)
    expires_at = utc_now() + timedelta(hours=1)
    raws = [encode_payload(issuer.issue(ADMIN_T1, UNIT_101, 1, expires_at)) for _ in range(5)]
    validator = TokenValidator(store)

    with ThreadPoolExecutor(max_workers=5) as pool:
        results = list(pool.map(lambda raw: validator.validate(raw, RECEPTION_T1), raws))

    assert all(r.valid for r in results)
