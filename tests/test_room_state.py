"""
tests.test_room_state
~~~~~~~~~~~~~~~~~~~~~

房间状态机单元测试 —— 直接调用阶段分派函数，覆盖阶段转换表中的每一格。
"""
from __future__ import annotations

import asyncio
from decimal import Decimal

import pytest

from auction_room.schemas.room_models import AuctionItem, AuctionRules, MessageKind, RoomPhase
from auction_room.services import room_state
from auction_room.services.room import Room, User


def _item(auctioneer: User) -> AuctionItem:
    return AuctionItem(
        name="古董花瓶",
        description="清代",
        auctioneer_id=auctioneer.user_id,
        auctioneer_name=auctioneer.nickname,
    )


def _rules() -> AuctionRules:
    return AuctionRules(start_price=Decimal("100"), increment_step=Decimal("10"), countdown_seconds=30)


def _system_contents(room: Room) -> list[str]:
    return [m.content for m in room.messages if m.kind is MessageKind.SYSTEM]


@pytest.fixture()
def bare_room(host: User) -> Room:
    return Room(name="状态测试", owner=host)


# ── 准备中 ────────────────────────────────────────────────────────────

class TestPreparing:

    def test_initial_phase(self, bare_room: Room) -> None:
        assert bare_room.phase is RoomPhase.PREPARING

    def test_upload_sets_item_and_rules(self, bare_room: Room, auctioneer: User) -> None:
        item, rules = _item(auctioneer), _rules()

        assert room_state.upload_item(bare_room, item, rules) is True
        assert bare_room.current_item == item
        assert bare_room.rules == rules
        assert "📦 新的拍卖品：古董花瓶" in _system_contents(bare_room)

    def test_start_without_item_fails(self, bare_room: Room) -> None:
        assert room_state.start_auction(bare_room, 0.01) is False
        assert bare_room.phase is RoomPhase.PREPARING

    def test_start_moves_to_listing_without_loop(self, bare_room: Room, auctioneer: User) -> None:
        """没有事件循环时进入上拍中，但不会安排自动推进。"""
        room_state.upload_item(bare_room, _item(auctioneer), _rules())

        assert room_state.start_auction(bare_room, 0.01) is True
        assert bare_room.phase is RoomPhase.LISTING
        assert bare_room.has_pending_advance is False
        assert "房间状态变更为：上拍中" in _system_contents(bare_room)

    def test_end_and_bid_are_noops(self, bare_room: Room, bidder1: User) -> None:
        before = len(bare_room.messages)

        assert room_state.end_auction(bare_room) is False
        assert room_state.place_bid(bare_room, bidder1, Decimal("500")) is False
        assert bare_room.phase is RoomPhase.PREPARING
        assert bare_room.bid_history == []
        assert len(bare_room.messages) == before


# ── 上拍中 ────────────────────────────────────────────────────────────

class TestListing:

    @pytest.fixture()
    def listing_room(self, bare_room: Room, auctioneer: User) -> Room:
        room_state.upload_item(bare_room, _item(auctioneer), _rules())
        room_state.start_auction(bare_room, 0.01)
        return bare_room

    def test_start_advances_immediately(self, listing_room: Room) -> None:
        assert room_state.start_auction(listing_room, 0.01) is True
        assert listing_room.phase is RoomPhase.AUCTIONING

    def test_upload_is_locked(self, listing_room: Room, auctioneer: User) -> None:
        original = listing_room.current_item

        assert room_state.upload_item(listing_room, _item(auctioneer), _rules()) is False
        assert listing_room.current_item is original

    def test_end_and_bid_are_noops(self, listing_room: Room, bidder1: User) -> None:
        assert room_state.end_auction(listing_room) is False
        assert room_state.place_bid(listing_room, bidder1, Decimal("500")) is False
        assert listing_room.phase is RoomPhase.LISTING


# ── 自动推进 ──────────────────────────────────────────────────────────

class TestAutoAdvance:
    """上拍倒计时在事件循环上执行，可被手动推进取消。"""

    @pytest.mark.asyncio
    async def test_listing_auto_advances(self, bare_room: Room, auctioneer: User) -> None:
        room_state.upload_item(bare_room, _item(auctioneer), _rules())

        room_state.start_auction(bare_room, 0.01)
        assert bare_room.phase is RoomPhase.LISTING
        assert bare_room.has_pending_advance is True

        await asyncio.sleep(0.05)

        assert bare_room.phase is RoomPhase.AUCTIONING
        assert _system_contents(bare_room)[-1] == "房间状态变更为：拍卖中"

    @pytest.mark.asyncio
    async def test_manual_advance_cancels_timer(self, bare_room: Room, auctioneer: User) -> None:
        """手动推进后，过期的回调不会再次改变阶段。"""
        room_state.upload_item(bare_room, _item(auctioneer), _rules())
        room_state.start_auction(bare_room, 0.02)

        room_state.start_auction(bare_room, 0.02)
        assert bare_room.phase is RoomPhase.AUCTIONING
        assert bare_room.has_pending_advance is False

        room_state.end_auction(bare_room)
        await asyncio.sleep(0.06)

        assert bare_room.phase is RoomPhase.CLOSED

    def test_stale_callback_is_noop(self, bare_room: Room) -> None:
        """房间不在上拍中时，回调不做任何事。"""
        before = len(bare_room.messages)

        assert room_state.advance_listing(bare_room) is False
        assert bare_room.phase is RoomPhase.PREPARING
        assert len(bare_room.messages) == before


# ── 拍卖中 ────────────────────────────────────────────────────────────

class TestAuctioning:

    @pytest.fixture()
    def auctioning(self, bare_room: Room, auctioneer: User) -> Room:
        room_state.upload_item(bare_room, _item(auctioneer), _rules())
        room_state.start_auction(bare_room, 0.01)
        room_state.start_auction(bare_room, 0.01)
        return bare_room

    def test_start_is_noop(self, auctioning: Room) -> None:
        assert room_state.start_auction(auctioning, 0.01) is False
        assert auctioning.phase is RoomPhase.AUCTIONING

    def test_upload_is_noop(self, auctioning: Room, auctioneer: User) -> None:
        assert room_state.upload_item(auctioning, _item(auctioneer), _rules()) is False

    def test_bid_is_recorded(self, auctioning: Room, bidder1: User) -> None:
        assert room_state.place_bid(auctioning, bidder1, Decimal("120")) is True

        assert auctioning.current_price == Decimal("120")
        assert auctioning.current_leader == "竞拍者1"
        assert [b.price for b in auctioning.bid_history] == [Decimal("120")]
        last = auctioning.messages[-1]
        assert last.kind is MessageKind.BID
        assert last.content == "竞拍者1 出价 ¥120"
        assert last.display_text == "💰 竞拍者1 出价 ¥120"

    def test_end_with_winner(self, auctioning: Room, bidder2: User) -> None:
        room_state.place_bid(auctioning, bidder2, Decimal("150"))

        assert room_state.end_auction(auctioning) is True
        assert auctioning.phase is RoomPhase.CLOSED
        contents = _system_contents(auctioning)
        assert contents[-2] == "房间状态变更为：已定拍"
        assert contents[-1] == "🎉 成交！恭喜 竞拍者2 以 ¥150 拍得"

    def test_end_without_bids(self, auctioning: Room) -> None:
        assert room_state.end_auction(auctioning) is True
        assert _system_contents(auctioning)[-1] == "流拍：没有人出价"


# ── 已定拍 ────────────────────────────────────────────────────────────

class TestClosed:

    @pytest.fixture()
    def closed(self, bare_room: Room, auctioneer: User, bidder1: User) -> Room:
        room_state.upload_item(bare_room, _item(auctioneer), _rules())
        room_state.start_auction(bare_room, 0.01)
        room_state.start_auction(bare_room, 0.01)
        room_state.place_bid(bare_room, bidder1, Decimal("130"))
        room_state.end_auction(bare_room)
        return bare_room

    def test_start_begins_next_round(self, closed: Room) -> None:
        assert room_state.start_auction(closed, 0.01) is True

        assert closed.phase is RoomPhase.PREPARING
        assert closed.current_item is None
        assert closed.current_bid is None
        assert closed.bid_history == []
        assert _system_contents(closed)[-1] == "🔄 准备下一轮拍卖"

    def test_other_operations_are_noops(self, closed: Room, auctioneer: User, bidder1: User) -> None:
        assert room_state.end_auction(closed) is False
        assert room_state.place_bid(closed, bidder1, Decimal("999")) is False
        assert room_state.upload_item(closed, _item(auctioneer), _rules()) is False
        assert closed.phase is RoomPhase.CLOSED
        assert closed.current_price == Decimal("130")
