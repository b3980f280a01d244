"""
auction_room.services.room_state
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间状态机 —— 四个阶段（准备中 / 上拍中 / 拍卖中 / 已定拍）下
``start_auction`` / ``end_auction`` / ``place_bid`` / ``upload_item`` 的行为。

阶段就是 ``room.phase`` 这个标签，每个操作一个分派函数，按标签决定行为。
所有函数都假设调用方已经通过了权限检查；在当前阶段不合法的操作返回 False，
不修改房间。

阶段转换表::

    PREPARING --start--> LISTING --(延迟 / start)--> AUCTIONING --end--> CLOSED
        ^                                                                  |
        +------------------------------start-------------------------------+
"""
from __future__ import annotations

from decimal import Decimal

from auction_room.core.logging import get_logger
from auction_room.schemas.room_models import AuctionItem, AuctionRules, Bid, RoomPhase
from auction_room.services.room import Room, User

logger = get_logger(__name__)


def start_auction(room: Room, listing_delay: float) -> bool:
    """开始拍卖。

    - 准备中：需要已有物品；进入上拍中，并在 ``listing_delay`` 秒后自动进入拍卖中。
    - 上拍中：房主提前开始，立即进入拍卖中。
    - 拍卖中：已经在进行，返回 False。
    - 已定拍：开启下一轮，回到准备中并清空物品和出价。
    """
    phase = room.phase

    if phase is RoomPhase.PREPARING:
        if room.current_item is None:
            logger.warning("没有拍卖物品，无法开始 | room=%s", room.room_id)
            return False
        room.change_phase(RoomPhase.LISTING)
        scheduled = room.schedule_auto_advance(listing_delay, lambda: advance_listing(room))
        if not scheduled:
            logger.warning(
                "没有运行中的事件循环，房间停留在上拍阶段，需手动开始 | room=%s",
                room.room_id,
            )
        return True

    if phase is RoomPhase.LISTING:
        room.change_phase(RoomPhase.AUCTIONING)
        return True

    if phase is RoomPhase.AUCTIONING:
        logger.warning("拍卖已经在进行中 | room=%s", room.room_id)
        return False

    # CLOSED：开启下一轮
    room.change_phase(RoomPhase.PREPARING)
    room.clear_auction()
    room.add_system_message("🔄 准备下一轮拍卖")
    return True


def advance_listing(room: Room) -> bool:
    """上拍倒计时到期的回调。房间已被手动推进时不做任何事。"""
    if room.phase is not RoomPhase.LISTING:
        room.cancel_auto_advance()
        return False
    room.change_phase(RoomPhase.AUCTIONING)
    return True


def end_auction(room: Room) -> bool:
    """结束拍卖，只在拍卖中有效：进入已定拍并公布成交结果。"""
    if room.phase is not RoomPhase.AUCTIONING:
        logger.warning(
            "当前阶段无法结束拍卖 | room=%s | phase=%s",
            room.room_id, room.phase.value,
        )
        return False

    room.change_phase(RoomPhase.CLOSED)
    winner = room.current_bid
    if winner is not None:
        room.add_system_message(f"🎉 成交！恭喜 {winner.bidder_name} 以 ¥{winner.price} 拍得")
    else:
        room.add_system_message("流拍：没有人出价")
    return True


def place_bid(room: Room, user: User, amount: Decimal) -> bool:
    """出价，只在拍卖中有效。

    金额与出价资格已由权限中心校验，这里无条件接受。
    """
    if room.phase is not RoomPhase.AUCTIONING:
        logger.warning(
            "当前阶段无法出价 | room=%s | phase=%s",
            room.room_id, room.phase.value,
        )
        return False

    bid = Bid(price=amount, bidder_id=user.user_id, bidder_name=user.nickname)
    room.add_bid(bid)
    logger.info("💰 %s 出价 ¥%s | room=%s", user.nickname, amount, room.room_id)
    return True


def upload_item(room: Room, item: AuctionItem, rules: AuctionRules) -> bool:
    """上传物品，只在准备中有效；上拍后物品锁定。"""
    if room.phase is not RoomPhase.PREPARING:
        logger.warning(
            "当前阶段无法修改物品 | room=%s | phase=%s",
            room.room_id, room.phase.value,
        )
        return False

    room.set_auction_item(item, rules)
    return True
