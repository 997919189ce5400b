import asyncio
from datetime import UTC, datetime

import pytest

from jlobby.adapters.directory.memory import InMemoryUserDirectory
from jlobby.adapters.presence.memory import InMemoryPresence
from jlobby.adapters.storage.memory import InMemoryStorage
from jlobby.core import codec
from jlobby.core.gate import AuthGate
from jlobby.core.guard import UNEXPECTED_ERROR
from jlobby.core.keyspace import Keyspace
from jlobby.core.matchmaking import (
    ALREADY_WAITING,
    USER_NOT_ONLINE,
    QueueMembership,
    RemovalOutcome,
)
from jlobby.domain.errors import (
    AlreadyExists,
    CASConflictError,
    Internal,
    PreconditionFailed,
    StorageError,
    Unauthenticated,
)
from jlobby.domain.models import CallContext, CallResult, QueueEntry, QueueStatus

T0 = datetime(2024, 1, 1, tzinfo=UTC)
ALICE = CallContext(uid="alice")

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingSleep:
    def __init__(self) -> None:
        self.calls: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)


class LockedStorage(InMemoryStorage):
    """InMemoryStorage whose deletes fail with scripted errors before succeeding."""

    def __init__(self) -> None:
        super().__init__()
        self.delete_errors: list[Exception] = []
        self.delete_calls = 0
        self.write_error: Exception | None = None

    async def delete(self, key, if_match=None):
        self.delete_calls += 1
        if self.delete_errors:
            raise self.delete_errors.pop(0)
        await super().delete(key, if_match)

    async def write(self, key, content, if_match=None, *, overwrite=False):
        if self.write_error is not None:
            raise self.write_error
        return await super().write(key, content, if_match, overwrite=overwrite)


def _aborted() -> StorageError:
    return StorageError("delete failed", OSError("contention"), code="aborted")


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def storage() -> LockedStorage:
    return LockedStorage()


@pytest.fixture
def presence() -> InMemoryPresence:
    return InMemoryPresence({"alice"})


@pytest.fixture
def sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def membership(storage, presence, sleep) -> QueueMembership:
    directory = InMemoryUserDirectory()
    directory.add("alice", "alice@example.com")
    directory.add("bob", "bob@example.com")
    return QueueMembership(
        gate=AuthGate(directory),
        queue=Keyspace(storage, "quick_matchmaking_queue", QueueEntry, clock=lambda: T0),
        presence=presence,
        sleep=sleep,
    )


async def _entry(storage) -> QueueEntry | None:
    content, _ = await storage.read("quick_matchmaking_queue/alice")
    return codec.decode(content, QueueEntry)


# ---------------------------------------------------------------------------
# join_queue
# ---------------------------------------------------------------------------


async def test_join_adds_waiting_entry(membership, storage) -> None:
    result = await membership.join_queue(ALICE)

    assert result == CallResult()
    assert result.to_dict() == {"success": True}
    assert await _entry(storage) == QueueEntry(
        uid="alice", created_at=T0, status=QueueStatus.WAITING
    )


async def test_join_requires_presence(membership, storage) -> None:
    with pytest.raises(PreconditionFailed) as info:
        await membership.join_queue(CallContext(uid="bob"))
    assert info.value.message == USER_NOT_ONLINE
    assert storage.keys() == []


async def test_join_twice_rejected(membership, storage) -> None:
    await membership.join_queue(ALICE)

    with pytest.raises(AlreadyExists) as info:
        await membership.join_queue(ALICE)
    assert info.value.message == ALREADY_WAITING
    assert storage.keys() == ["quick_matchmaking_queue/alice"]


async def test_join_does_not_need_user_record(membership, storage) -> None:
    await membership.join_queue(ALICE)
    assert storage.keys("users/") == []


async def test_join_after_going_offline(membership, presence) -> None:
    presence.mark_offline("alice")
    with pytest.raises(PreconditionFailed):
        await membership.join_queue(ALICE)


async def test_join_unauthenticated(membership, storage) -> None:
    with pytest.raises(Unauthenticated):
        await membership.join_queue(CallContext())
    assert storage.keys() == []


async def test_join_storage_failure_is_hidden(membership, storage) -> None:
    storage.write_error = StorageError("write failed", OSError("disk full"))

    with pytest.raises(Internal) as info:
        await membership.join_queue(ALICE)
    assert info.value.message == UNEXPECTED_ERROR


# ---------------------------------------------------------------------------
# leave_queue
# ---------------------------------------------------------------------------


async def test_leave_removes_entry(membership, storage) -> None:
    await membership.join_queue(ALICE)

    result = await membership.leave_queue(ALICE)

    assert result.to_dict() == {"success": True}
    assert storage.keys() == []
    assert storage.delete_calls == 1


async def test_leave_absent_entry_skips_delete(membership, storage) -> None:
    result = await membership.leave_queue(ALICE)

    assert result.to_dict() == {"success": True}
    assert storage.delete_calls == 0


async def test_leave_twice_succeeds(membership, storage) -> None:
    await membership.join_queue(ALICE)
    await membership.leave_queue(ALICE)
    assert (await membership.leave_queue(ALICE)).success is True


async def test_leave_offline_user_allowed(membership, storage, presence) -> None:
    await membership.join_queue(ALICE)
    presence.mark_offline("alice")

    await membership.leave_queue(ALICE)
    assert storage.keys() == []


async def test_leave_gate_errors_propagate(membership) -> None:
    with pytest.raises(PreconditionFailed):
        await membership.leave_queue(CallContext(uid="alice", app_check=False))


async def test_leave_always_locked_reports_success(membership, storage, sleep) -> None:
    await membership.join_queue(ALICE)
    storage.delete_errors = [_aborted() for _ in range(10)]

    result = await membership.leave_queue(ALICE)

    assert result.to_dict() == {"success": True}
    assert storage.delete_calls == 10
    assert sleep.calls == [0.5] * 9
    assert storage.keys() == ["quick_matchmaking_queue/alice"]


@pytest.mark.parametrize(
    "error",
    [
        CASConflictError("etag mismatch"),
        StorageError("delete failed", OSError("row is locked")),
        StorageError("delete failed", OSError(), code="unavailable"),
    ],
)
async def test_leave_retries_contended_errors(membership, storage, sleep, error) -> None:
    await membership.join_queue(ALICE)
    storage.delete_errors = [error]

    await membership.leave_queue(ALICE)

    assert storage.delete_calls == 2
    assert sleep.calls == [0.5]
    assert storage.keys() == []


async def test_leave_stops_on_other_errors(membership, storage, sleep) -> None:
    await membership.join_queue(ALICE)
    storage.delete_errors = [
        StorageError("delete failed", OSError(), code="permission-denied")
    ]

    result = await membership.leave_queue(ALICE)

    assert result.success is True
    assert storage.delete_calls == 1
    assert sleep.calls == []
    assert storage.keys() == ["quick_matchmaking_queue/alice"]


async def test_leave_succeeds_when_consumer_removed_entry(membership, storage) -> None:
    await membership.join_queue(ALICE)

    async def consumer_took_it(key, if_match=None):
        await InMemoryStorage.delete(storage, key, if_match)
        raise _aborted()

    storage.delete = consumer_took_it  # type: ignore[method-assign]

    await membership.leave_queue(ALICE)
    assert storage.keys() == []


# ---------------------------------------------------------------------------
# remove
# ---------------------------------------------------------------------------


async def test_remove_outcomes(membership, storage) -> None:
    assert await membership.remove("alice") is RemovalOutcome.ABSENT
    await membership.join_queue(ALICE)
    assert await membership.remove("alice") is RemovalOutcome.DELETED


async def test_remove_reports_contended_and_failed(membership, storage) -> None:
    await membership.join_queue(ALICE)
    storage.delete_errors = [_aborted() for _ in range(10)]
    assert await membership.remove("alice") is RemovalOutcome.CONTENDED

    storage.delete_errors = [StorageError("delete failed", OSError("denied"))]
    assert await membership.remove("alice") is RemovalOutcome.FAILED


async def test_remove_is_cancellable(storage, presence) -> None:
    directory = InMemoryUserDirectory()
    directory.add("alice", "alice@example.com")
    membership = QueueMembership(
        gate=AuthGate(directory),
        queue=Keyspace(storage, "quick_matchmaking_queue", QueueEntry),
        presence=presence,
    )
    await membership.join_queue(ALICE)
    storage.delete_errors = [_aborted() for _ in range(10)]

    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(membership.leave_queue(ALICE), timeout=0.1)

    assert storage.delete_calls == 1
    assert storage.keys() == ["quick_matchmaking_queue/alice"]
