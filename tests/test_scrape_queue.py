"""
tests/test_scrape_queue.py

Scrape queue state machine against SQLite: idempotent enqueue, claim
ordering and exclusivity, the retry bound and claim release.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from sqlalchemy.orm import sessionmaker

from conftest import SOURCE
from db.models.scrape_queue import ScrapeQueueStatus
from db.repositories.scrape_queue_repository import QueueOutcome, ScrapeQueueRepository
from db.types import utcnow


def _enqueue(session_factory: sessionmaker, urls: list[str], priority: int = 0, source: str = SOURCE) -> None:
    with session_factory() as session:
        queue = ScrapeQueueRepository(session)
        for url in urls:
            queue.enqueue(source=source, canonical_url=url, priority=priority)
        session.commit()


def _claim(session_factory: sessionmaker, limit: int, source: str = SOURCE):
    with session_factory() as session:
        items = ScrapeQueueRepository(session).claim(source=source, limit=limit)
        session.commit()
        return items


def _item(session_factory: sessionmaker, url: str):
    with session_factory() as session:
        return ScrapeQueueRepository(session).get_item(source=SOURCE, canonical_url=url)


# ---------------------------------------------------------------------------
# Enqueue
# ---------------------------------------------------------------------------


class TestEnqueue:
    def test_enqueue_is_idempotent(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"])
        _enqueue(session_factory, ["https://example.com/1"], priority=10)

        with session_factory() as session:
            counts = ScrapeQueueRepository(session).status_counts(source=SOURCE)
        assert counts[ScrapeQueueStatus.PENDING] == 1

    def test_waiting_item_priority_is_only_raised(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"], priority=0)
        _enqueue(session_factory, ["https://example.com/1"], priority=10)
        assert _item(session_factory, "https://example.com/1").priority == 10

        _enqueue(session_factory, ["https://example.com/1"], priority=3)
        item = _item(session_factory, "https://example.com/1")
        assert item.priority == 10
        assert item.status == ScrapeQueueStatus.PENDING
        assert item.attempts == 0

    def test_done_item_is_requeued_with_reset_attempts(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"])
        [item] = _claim(session_factory, 1)
        with session_factory() as session:
            ScrapeQueueRepository(session).complete(item, QueueOutcome.done("not_found"))
            session.commit()

        finished = _item(session_factory, "https://example.com/1")
        assert finished.status == ScrapeQueueStatus.DONE
        assert finished.attempts == 1

        _enqueue(session_factory, ["https://example.com/1"], priority=5)
        requeued = _item(session_factory, "https://example.com/1")
        assert requeued.status == ScrapeQueueStatus.PENDING
        assert requeued.attempts == 0
        assert requeued.priority == 5
        assert requeued.last_error is None

    def test_same_url_in_two_sources_is_two_items(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"], source="a")
        _enqueue(session_factory, ["https://example.com/1"], source="b")
        assert len(_claim(session_factory, 10, source="a")) == 1
        assert len(_claim(session_factory, 10, source="b")) == 1


# ---------------------------------------------------------------------------
# Claim
# ---------------------------------------------------------------------------


class TestClaim:
    def test_claim_orders_by_priority_then_age(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/old"], priority=0)
        _enqueue(session_factory, ["https://example.com/new"], priority=10)

        items = _claim(session_factory, 1)
        assert [item.canonical_url for item in items] == ["https://example.com/new"]
        assert items[0].status == ScrapeQueueStatus.PROCESSING
        assert items[0].claim_token is not None
        assert items[0].claimed_at is not None

    def test_claimed_items_are_not_claimed_again(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, [f"https://example.com/{i}" for i in range(3)])
        first = _claim(session_factory, 2)
        second = _claim(session_factory, 5)
        assert len(first) == 2
        assert len(second) == 1
        assert not {item.id for item in first} & {item.id for item in second}
        assert _claim(session_factory, 5) == []

    def test_claim_zero_returns_nothing(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"])
        assert _claim(session_factory, 0) == []

    def test_excluded_items_are_not_claimed(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"], priority=10)
        _enqueue(session_factory, ["https://example.com/2"])
        [first] = _claim(session_factory, 1)
        with session_factory() as session:
            ScrapeQueueRepository(session).complete(first, QueueOutcome.failure("boom"))
            session.commit()

        with session_factory() as session:
            items = ScrapeQueueRepository(session).claim(source=SOURCE, limit=5, exclude_ids={first.id})
            session.commit()
        assert [item.canonical_url for item in items] == ["https://example.com/2"]
        assert _item(session_factory, "https://example.com/1").status == ScrapeQueueStatus.RETRY

    def test_concurrent_claimers_never_share_items(self, session_factory: sessionmaker) -> None:
        total = 40
        _enqueue(session_factory, [f"https://example.com/{i}" for i in range(total)])

        workers = 4
        barrier = threading.Barrier(workers)
        claimed: list[list] = [[] for _ in range(workers)]
        errors: list[BaseException] = []

        def claimer(index: int) -> None:
            try:
                barrier.wait()
                while True:
                    batch = _claim(session_factory, 3)
                    if not batch:
                        return
                    claimed[index].extend(item.id for item in batch)
            except BaseException as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=claimer, args=(index,)) for index in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        all_ids = [item_id for ids in claimed for item_id in ids]
        assert len(all_ids) == total
        assert len(set(all_ids)) == total


# ---------------------------------------------------------------------------
# Completion, retries, release
# ---------------------------------------------------------------------------


class TestCompletion:
    def test_always_failing_item_is_done_after_exactly_three_attempts(self, session_factory: sessionmaker) -> None:
        url = "https://example.com/broken"
        _enqueue(session_factory, [url])

        statuses = []
        for _ in range(3):
            [item] = _claim(session_factory, 1)
            with session_factory() as session:
                statuses.append(ScrapeQueueRepository(session).complete(item, QueueOutcome.failure("boom")))
                session.commit()

        assert statuses == [ScrapeQueueStatus.RETRY, ScrapeQueueStatus.RETRY, ScrapeQueueStatus.DONE]
        final = _item(session_factory, url)
        assert final.attempts == 3
        assert final.last_error == "boom"
        assert _claim(session_factory, 1) == []

    def test_complete_with_lost_claim_returns_none(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"])
        [item] = _claim(session_factory, 1)

        with session_factory() as session:
            released = ScrapeQueueRepository(session).release_expired_claims(
                source=SOURCE,
                older_than=utcnow() + timedelta(minutes=1),
            )
            session.commit()
        assert released == 1

        with session_factory() as session:
            assert ScrapeQueueRepository(session).complete(item, QueueOutcome.done()) is None
            session.commit()
        assert _item(session_factory, "https://example.com/1").status == ScrapeQueueStatus.RETRY

    def test_release_returns_item_without_counting_attempt(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"])
        [item] = _claim(session_factory, 1)
        with session_factory() as session:
            assert ScrapeQueueRepository(session).release(item) is True
            session.commit()

        released = _item(session_factory, "https://example.com/1")
        assert released.status == ScrapeQueueStatus.PENDING
        assert released.attempts == 0
        assert released.claim_token is None

    def test_recent_claims_are_not_expired(self, session_factory: sessionmaker) -> None:
        _enqueue(session_factory, ["https://example.com/1"])
        _claim(session_factory, 1)
        with session_factory() as session:
            released = ScrapeQueueRepository(session).release_expired_claims(
                source=SOURCE,
                older_than=utcnow() - timedelta(minutes=60),
            )
        assert released == 0
