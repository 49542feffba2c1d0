"""二维码存储测试

两种实现共享同一组契约：租户分区隔离、插入去重、原子消费。
"""
from datetime import timedelta

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from mivilla.database.access_token_models import TokenStatus
from mivilla.models.access_schemas import TokenRecord
from mivilla.services.errors import StoreUnavailable
from mivilla.services.token_store import ConsumeOutcome, DuplicateTokenId, SqlTokenStore
from mivilla.utils.time import utc_now


def make_record(token_id="tok-1", tenant_id="t1", max_uses=2, current_uses=0, expires_in=timedelta(hours=1)):
    now = utc_now()
    return TokenRecord(
        id=token_id,
        tenant_id=tenant_id,
        subject_id="res-101",
        subject_name="Ana Pérez",
        subject_unit="101",
        issued_by_id="admin-1",
        issued_by_name="Administración",
        created_at=now,
        expires_at=now + expires_in,
        max_uses=max_uses,
        current_uses=current_uses,
        status=TokenStatus.ACTIVE,
    )


class TestPartition:
    """租户分区"""

    def test_get_scoped_to_tenant(self, store):
        store.partition("t1").insert(make_record())

        assert store.partition("t1").get("tok-1") is not None
        assert store.partition("t2").get("tok-1") is None

    def test_same_id_in_two_tenants(self, store):
        store.partition("t1").insert(make_record(tenant_id="t1"))
        store.partition("t2").insert(make_record(tenant_id="t2", max_uses=5))

        assert store.partition("t1").get("tok-1").max_uses == 2
        assert store.partition("t2").get("tok-1").max_uses == 5

    def test_insert_into_foreign_partition_refused(self, store):
        with pytest.raises(ValueError):
            store.partition("t2").insert(make_record(tenant_id="t1"))

    def test_empty_tenant_refused(self, store):
        with pytest.raises(ValueError):
            store.partition("")

    def test_duplicate_id(self, store):
        store.partition("t1").insert(make_record())

        with pytest.raises(DuplicateTokenId):
            store.partition("t1").insert(make_record())

    def test_upsert_overwrites(self, store):
        partition = store.partition("t1")
        partition.insert(make_record())
        partition.upsert(make_record(current_uses=1))

        assert partition.get("tok-1").current_uses == 1

    def test_list_newest_first(self, store):
        partition = store.partition("t1")
        older = make_record("a")
        older = older.model_copy(update={"created_at": older.created_at - timedelta(minutes=5)})
        partition.insert(older)
        partition.insert(make_record("b"))
        store.partition("t2").insert(make_record("c", tenant_id="t2"))

        assert [r.id for r in partition.list()] == ["b", "a"]

    def test_returned_record_is_a_copy(self, store):
        partition = store.partition("t1")
        partition.insert(make_record())

        partition.get("tok-1").current_uses = 99

        assert partition.get("tok-1").current_uses == 0


class TestTryConsume:
    """原子消费"""

    def test_consume_increments(self, store):
        partition = store.partition("t1")
        partition.insert(make_record(max_uses=2))

        result = partition.try_consume("tok-1", utc_now())

        assert result.consumed
        assert result.record.current_uses == 1
        assert result.record.status == TokenStatus.ACTIVE

    def test_consume_to_depleted(self, store):
        partition = store.partition("t1")
        partition.insert(make_record(max_uses=1))

        result = partition.try_consume("tok-1", utc_now())
        again = partition.try_consume("tok-1", utc_now())

        assert result.record.status == TokenStatus.DEPLETED
        assert again.outcome == ConsumeOutcome.EXHAUSTED
        assert partition.get("tok-1").current_uses == 1

    def test_consume_missing(self, store):
        assert store.partition("t1").try_consume("nope", utc_now()).outcome == ConsumeOutcome.NOT_FOUND

    def test_consume_other_tenant_is_not_found(self, store):
        store.partition("t1").insert(make_record())

        result = store.partition("t2").try_consume("tok-1", utc_now())

        assert result.outcome == ConsumeOutcome.NOT_FOUND
        assert store.partition("t1").get("tok-1").current_uses == 0

    def test_consume_expired(self, store):
        partition = store.partition("t1")
        partition.insert(make_record(expires_in=timedelta(seconds=-1)))

        result = partition.try_consume("tok-1", utc_now())

        assert result.outcome == ConsumeOutcome.EXPIRED
        assert partition.get("tok-1").current_uses == 0


def test_sql_errors_become_store_unavailable(tmp_path):
    # 没有建表的数据库：任何读写都会失败
    engine = create_engine(f"sqlite:///{tmp_path / 'empty.db'}")
    store = SqlTokenStore(sessionmaker(bind=engine))

    with pytest.raises(StoreUnavailable):
        store.partition("t1").get("tok-1")
    with pytest.raises(StoreUnavailable):
        store.partition("t1").try_consume("tok-1", utc_now())
