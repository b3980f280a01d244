"""
tests.conftest
~~~~~~~~~~~~~~

共享 pytest fixtures —— 构造房间、各角色用户以及处于不同阶段的房间，
所有测试都在内存中完成，不依赖事件循环（需要自动推进的测试自行使用 asyncio）。
"""
from __future__ import annotations

import os

import pytest

# ── 在所有测试导入前设置环境变量 ─────────────────────────────────────
os.environ.setdefault("ENVIRONMENT", "test")

from auction_room.schemas.room_models import MicrophoneStatus, RoomPhase, UserRole  # noqa: E402
from auction_room.services.room import Room, User  # noqa: E402
from auction_room.services.room_manager import RoomManager  # noqa: E402


@pytest.fixture()
def manager() -> RoomManager:
    """短延迟的房间管理器，方便测试自动推进。"""
    return RoomManager(listing_delay=0.01)


@pytest.fixture()
def host() -> User:
    return User(user_id="host", nickname="主持人", role=UserRole.HOST)


@pytest.fixture()
def auctioneer() -> User:
    return User(user_id="auc", nickname="拍卖人", role=UserRole.AUCTIONEER)


@pytest.fixture()
def bidder1() -> User:
    return User(user_id="bid1", nickname="竞拍者1", role=UserRole.BIDDER)


@pytest.fixture()
def bidder2() -> User:
    return User(user_id="bid2", nickname="竞拍者2", role=UserRole.BIDDER)


@pytest.fixture()
def viewer() -> User:
    return User(user_id="viewer", nickname="观众", role=UserRole.VIEWER)


@pytest.fixture()
def room(
    manager: RoomManager,
    host: User,
    auctioneer: User,
    bidder1: User,
    bidder2: User,
    viewer: User,
) -> Room:
    """准备中的房间，所有人已加入，拍卖人尚未上麦。"""
    room = manager.create_room("测试房间", host)
    for user in (auctioneer, bidder1, bidder2, viewer):
        manager.join_room(user, room)
    return room


@pytest.fixture()
def room_with_item(manager: RoomManager, room: Room, auctioneer: User) -> Room:
    """拍卖人已上麦并上传物品（起拍 100，加价 10）。"""
    assert manager.apply_for_microphone(auctioneer, room).is_ok
    assert manager.upload_item(auctioneer, room, "靓号手机号", "尾号8888").is_ok
    return room


@pytest.fixture()
def auctioning_room(manager: RoomManager, room_with_item: Room, host: User) -> Room:
    """已进入拍卖中的房间。

    没有运行中的事件循环时，第一次开始只会进入上拍中，第二次开始立即进入拍卖中。
    """
    assert manager.start_auction(host, room_with_item).is_ok
    assert room_with_item.phase is RoomPhase.LISTING
    assert manager.start_auction(host, room_with_item).is_ok
    assert room_with_item.phase is RoomPhase.AUCTIONING
    return room_with_item


def assert_seat_invariant(room: Room) -> None:
    """占用的麦位数等于在麦上的用户数；1 号麦位始终是锁定的房主。"""
    occupied = [m for m in room.microphones if m.status is MicrophoneStatus.OCCUPIED]
    assert all(m.occupant is not None for m in occupied)
    assert all(
        m.occupant is None for m in room.microphones if m.status is not MicrophoneStatus.OCCUPIED
    )
    assert all(m.occupant.on_microphone for m in occupied)
    assert len({m.occupant.user_id for m in occupied}) == len(occupied)
    seat_one = room.microphones[0]
    assert seat_one.occupant is room.owner
    assert seat_one.locked is True


@pytest.fixture()
def seat_invariant():
    """返回麦位不变量检查函数。"""
    return assert_seat_invariant
