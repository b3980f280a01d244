"""
auction_room.services.room
~~~~~~~~~~~~~~~~~~~~~~~~~~

拍卖房间领域模型 —— ``User``、``Microphone`` 与聚合根 ``Room``。

``Room`` 独占麦位、消息、出价与当前物品/规则；对 ``User`` 只持有引用，
用户的生命周期由调用方管理。这里的方法只做保持不变量的修改，
是否允许操作由权限中心判断，阶段相关的行为由 ``room_state`` 负责。
"""
from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import datetime
from decimal import Decimal

from auction_room.core.logging import get_logger
from auction_room.schemas.room_models import (
    AuctionItem,
    AuctionRules,
    Bid,
    Message,
    MessageKind,
    MicrophoneStatus,
    RoomInfoData,
    RoomPhase,
    SeatInfoData,
    UserRole,
    new_id,
)

logger = get_logger(__name__)


class User:
    """房间参与者。

    Attributes:
        user_id: 用户唯一标识。
        nickname: 显示昵称。
        role: 当前角色。
        on_microphone: 是否在麦位上（由 ``Microphone`` 维护）。
        muted: 是否被禁言。
    """

    def __init__(self, user_id: str, nickname: str, role: UserRole) -> None:
        self.user_id = user_id
        self.nickname = nickname
        self.role = role
        self.on_microphone: bool = False
        self.muted: bool = False

    @property
    def is_auctioneer(self) -> bool:
        return self.role is UserRole.AUCTIONEER

    def __repr__(self) -> str:
        return f"User({self.user_id!r}, {self.nickname!r}, {self.role.value})"


class Microphone:
    """一个麦位。

    不变量：``status == OCCUPIED`` 当且仅当 ``occupant`` 不为空。
    锁定的空麦位状态为 ``LOCKED``，只能通过显式分配占用。
    """

    def __init__(self, seat_number: int, locked: bool = False) -> None:
        self.seat_number = seat_number
        self.occupant: User | None = None
        self.locked = locked
        self.status: MicrophoneStatus = (
            MicrophoneStatus.LOCKED if locked else MicrophoneStatus.EMPTY
        )

    @property
    def is_available(self) -> bool:
        """是否可被申请上麦占用（空闲且未锁定）。"""
        return self.status is MicrophoneStatus.EMPTY and not self.locked

    def occupy(self, user: User) -> None:
        self.occupant = user
        self.status = MicrophoneStatus.OCCUPIED
        user.on_microphone = True

    def vacate(self) -> User | None:
        """释放麦位，返回原占用者。"""
        user = self.occupant
        if user is not None:
            user.on_microphone = False
        self.occupant = None
        self.status = MicrophoneStatus.LOCKED if self.locked else MicrophoneStatus.EMPTY
        return user

    def lock(self) -> None:
        self.locked = True
        if self.occupant is None:
            self.status = MicrophoneStatus.LOCKED

    def unlock(self) -> None:
        self.locked = False
        if self.occupant is None:
            self.status = MicrophoneStatus.EMPTY

    def info(self) -> SeatInfoData:
        return SeatInfoData(
            seat_number=self.seat_number,
            status=self.status,
            locked=self.locked,
            occupant_id=self.occupant.user_id if self.occupant else None,
        )


class Room:
    """一个拍卖房间（聚合根）。

    Attributes:
        room_id: 房间唯一标识。
        name: 房间名称。
        owner: 房主，始终是参与者并固定占用锁定的 1 号麦位。
        phase: 当前拍卖阶段，阶段行为按此标签分派。
        microphones: 按编号排列的麦位列表，数量在创建时固定。
        current_item: 当前拍卖物品。
        rules: 当前物品的拍卖规则。
        current_bid: 当前领先出价。
        bid_history: 本轮全部已接受出价（按时间顺序）。
        participants: 参与者列表（按 ID 去重，保留加入顺序）。
        messages: 只追加的消息流。
    """

    def __init__(
        self,
        name: str,
        owner: User,
        microphone_count: int = 6,
        room_id: str | None = None,
    ) -> None:
        if microphone_count < 1:
            raise ValueError(f"microphone_count must be >= 1, got {microphone_count}")

        self.room_id = room_id or new_id()
        self.name = name
        self.owner = owner
        self.created_at = datetime.now()

        self.phase: RoomPhase = RoomPhase.PREPARING
        self._auto_advance: asyncio.TimerHandle | None = None

        self.microphones: list[Microphone] = [
            Microphone(seat_number=i) for i in range(1, microphone_count + 1)
        ]
        # 1 号麦位给房主
        owner_seat = self.microphones[0]
        owner_seat.occupy(owner)
        owner_seat.lock()

        self.current_item: AuctionItem | None = None
        self.rules: AuctionRules = AuctionRules.default()
        self.current_bid: Bid | None = None
        self.bid_history: list[Bid] = []

        self.participants: list[User] = [owner]
        self.messages: list[Message] = []

        self.add_system_message(f"欢迎来到{name}！")

    # ── 阶段管理 ──────────────────────────────────────────────────────

    def change_phase(self, new_phase: RoomPhase) -> None:
        """切换阶段，同时取消尚未触发的自动推进。"""
        self.cancel_auto_advance()
        old_phase = self.phase
        self.phase = new_phase
        logger.info(
            "房间阶段变更 | room=%s | %s -> %s",
            self.room_id, old_phase.value, new_phase.value,
        )
        self.add_system_message(f"房间状态变更为：{new_phase.display_name}")

    def schedule_auto_advance(self, delay: float, callback: Callable[[], None]) -> bool:
        """在当前事件循环上延迟执行阶段推进回调。

        Returns:
            没有正在运行的事件循环时返回 False，此时不会安排任何回调。
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return False
        self.cancel_auto_advance()
        self._auto_advance = loop.call_later(delay, callback)
        return True

    def cancel_auto_advance(self) -> None:
        if self._auto_advance is not None:
            self._auto_advance.cancel()
            self._auto_advance = None

    @property
    def has_pending_advance(self) -> bool:
        return self._auto_advance is not None and not self._auto_advance.cancelled()

    @property
    def phase_description(self) -> str:
        return self.phase.description

    # ── 用户管理 ──────────────────────────────────────────────────────

    def add_user(self, user: User) -> bool:
        """加入房间（幂等）。已在房间内时返回 False。"""
        if self.get_user(user.user_id) is not None:
            return False
        self.participants.append(user)
        self.add_system_message(f"{user.nickname} 加入了房间")
        return True

    def remove_user(self, user_id: str) -> bool:
        """移出房间并释放其麦位。房主不能被移出。"""
        user = self.get_user(user_id)
        if user is None or user is self.owner:
            return False
        if self.find_seat_of(user_id) is not None:
            self.remove_microphone(user_id)
        self.participants.remove(user)
        self.add_system_message(f"{user.nickname} 离开了房间")
        return True

    def get_user(self, user_id: str) -> User | None:
        return next((u for u in self.participants if u.user_id == user_id), None)

    # ── 麦位管理 ──────────────────────────────────────────────────────

    def available_microphone(self) -> Microphone | None:
        """编号最小的空闲且未锁定的麦位。"""
        return next((m for m in self.microphones if m.is_available), None)

    def get_microphone(self, seat_number: int) -> Microphone | None:
        return next((m for m in self.microphones if m.seat_number == seat_number), None)

    def find_seat_of(self, user_id: str) -> Microphone | None:
        return next(
            (m for m in self.microphones if m.occupant and m.occupant.user_id == user_id),
            None,
        )

    def assign_microphone(self, user: User, seat_number: int, allow_locked: bool = False) -> bool:
        """把用户放到指定麦位。

        Args:
            user: 上麦用户，已在其他麦位时拒绝。
            seat_number: 目标麦位编号。
            allow_locked: 是否允许占用锁定的空麦位（仅房主显式分配时使用）。
        """
        mic = self.get_microphone(seat_number)
        if mic is None or mic.occupant is not None:
            return False
        if mic.locked and not allow_locked:
            return False
        if self.find_seat_of(user.user_id) is not None:
            return False

        mic.occupy(user)
        self.add_system_message(f"{user.nickname} 上麦了（{seat_number}号麦位）")
        return True

    def remove_microphone(self, user_id: str) -> bool:
        """让用户下麦。用户不在麦上或是房主时返回 False。"""
        mic = self.find_seat_of(user_id)
        if mic is None or mic.occupant is self.owner:
            return False
        user = mic.vacate()
        username = user.nickname if user else "用户"
        self.add_system_message(f"{username} 下麦了")
        return True

    # ── 拍卖管理 ──────────────────────────────────────────────────────

    def set_auction_item(self, item: AuctionItem, rules: AuctionRules) -> None:
        self.current_item = item
        self.rules = rules
        self.add_system_message(f"📦 新的拍卖品：{item.name}")

    def clear_auction(self) -> None:
        """清空当前物品与出价，为下一轮做准备。

        出价历史只保留当前一轮，新一轮开始时一并清空。
        """
        self.current_item = None
        self.current_bid = None
        self.bid_history = []

    def add_bid(self, bid: Bid) -> None:
        self.current_bid = bid
        self.bid_history.append(bid)
        self.messages.append(
            Message(
                user_id=bid.bidder_id,
                username=bid.bidder_name,
                content=bid.display_text,
                kind=MessageKind.BID,
                timestamp=bid.timestamp,
            ),
        )

    # ── 消息管理 ──────────────────────────────────────────────────────

    def add_message(self, user: User, content: str, kind: MessageKind = MessageKind.TEXT) -> Message:
        message = Message(
            user_id=user.user_id,
            username=user.nickname,
            content=content,
            kind=kind,
        )
        self.messages.append(message)
        return message

    def add_system_message(self, content: str) -> Message:
        message = Message.system(content)
        self.messages.append(message)
        return message

    # ── 便捷属性 ──────────────────────────────────────────────────────

    @property
    def current_price(self) -> Decimal:
        """领先出价，无人出价时为起拍价。"""
        return self.current_bid.price if self.current_bid else self.rules.start_price

    @property
    def current_leader(self) -> str | None:
        return self.current_bid.bidder_name if self.current_bid else None

    @property
    def online_count(self) -> int:
        return len(self.participants)

    @property
    def current_auctioneer(self) -> User | None:
        """第一个在麦上的拍卖人。"""
        return next(
            (u for u in self.participants if u.role is UserRole.AUCTIONEER and u.on_microphone),
            None,
        )

    def info(self) -> RoomInfoData:
        """返回房间摘要信息。"""
        return RoomInfoData(
            room_id=self.room_id,
            name=self.name,
            owner_id=self.owner.user_id,
            phase=self.phase,
            online_count=self.online_count,
            current_item=self.current_item,
            current_price=self.current_price,
            current_leader=self.current_leader,
            seats=[m.info() for m in self.microphones],
        )
