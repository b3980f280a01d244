"""
auction_room.services.room_manager
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间管理器 —— 整合权限中心和房间状态机，是调用方唯一的修改入口。

每个修改操作的流程:
  1. 通过 ``PermissionCenter`` 做权限检查，拒绝时返回 ``permission_denied``
  2. 调用 ``room_state`` 的阶段分派函数（或直接调用 ``Room`` 的修改方法）
  3. 把 True / False 转换为 ``RoomResult``

除 ``create_room`` 外，公开操作全部返回 ``RoomResult``，不向调用方抛出异常。
``RoomManager`` 由宿主显式创建并传递，不是全局单例。
"""
from __future__ import annotations

from decimal import Decimal, InvalidOperation

from pydantic import ValidationError

from auction_room.core.config import settings
from auction_room.core.logging import get_logger
from auction_room.schemas.room_models import AuctionItem, AuctionRules, RoomAction, UserRole
from auction_room.schemas.room_result import RoomError, RoomResult
from auction_room.services import room_state
from auction_room.services.permission import (
    ActionParams,
    BidParams,
    KickParams,
    PermissionCenter,
    SeatParams,
)
from auction_room.services.room import Room, User

logger = get_logger(__name__)

AmountLike = Decimal | int | float | str


def _to_decimal(value: AmountLike) -> Decimal | None:
    """把调用方传入的金额转为 ``Decimal``，无法转换时返回 None。"""
    if isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        value = str(value)
    try:
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None


class RoomManager:
    """房间管理器。

    Attributes:
        permission_center: 本管理器使用的权限中心。
        listing_delay: 上拍后自动进入拍卖中的延迟（秒）。
        microphone_count: 新建房间的麦位数量。
    """

    def __init__(
        self,
        permission_center: PermissionCenter | None = None,
        listing_delay: float | None = None,
        microphone_count: int | None = None,
    ) -> None:
        self.permission_center: PermissionCenter = permission_center or PermissionCenter()
        self.listing_delay: float = (
            settings.LISTING_DELAY_SECONDS if listing_delay is None else listing_delay
        )
        self.microphone_count: int = (
            settings.MICROPHONE_COUNT if microphone_count is None else microphone_count
        )
        self._current_room: Room | None = None

    def _check(
        self,
        action: RoomAction,
        user: User,
        room: Room,
        params: ActionParams = None,
    ) -> RoomResult | None:
        """权限检查，拒绝时返回失败结果，允许时返回 None。"""
        result = self.permission_center.check_permission(action, user, room, params)
        if result.allowed:
            return None
        return RoomResult.fail(RoomError.permission_denied(result.reason or "权限不足"))

    @staticmethod
    def _outcome(success: bool, failure_reason: str) -> RoomResult[None]:
        if success:
            return RoomResult.ok()
        return RoomResult.fail(RoomError.operation_failed(failure_reason))

    # ── 房间操作 ──────────────────────────────────────────────────────

    def create_room(self, name: str, owner: User, microphone_count: int | None = None) -> Room:
        """创建房间（无需权限检查）。房主自动入座锁定的 1 号麦位。

        Raises:
            ValueError: 麦位数量小于 1。
        """
        room = Room(
            name=name,
            owner=owner,
            microphone_count=self.microphone_count if microphone_count is None else microphone_count,
        )
        self._current_room = room
        logger.info("🏠 创建房间成功 | room=%s | name=%s | owner=%s", room.room_id, name, owner.nickname)
        return room

    def get_current_room(self) -> Room | None:
        """最近一次由本管理器创建的房间。"""
        return self._current_room

    # ── 拍卖流程操作（带权限检查）─────────────────────────────────────

    def upload_item(
        self,
        user: User,
        room: Room,
        item_name: str,
        description: str,
        start_price: AmountLike = Decimal("100"),
        increment_step: AmountLike = Decimal("10"),
        countdown_seconds: int | None = None,
    ) -> RoomResult[None]:
        """上传拍卖物品，规则随物品一起设定。"""
        denied = self._check(RoomAction.UPLOAD_ITEM, user, room)
        if denied:
            return denied

        try:
            item = AuctionItem(
                name=item_name,
                description=description,
                auctioneer_id=user.user_id,
                auctioneer_name=user.nickname,
            )
            rules = AuctionRules(
                start_price=_to_decimal(start_price),
                increment_step=_to_decimal(increment_step),
                countdown_seconds=(
                    settings.DEFAULT_COUNTDOWN_SECONDS
                    if countdown_seconds is None else countdown_seconds
                ),
            )
        except ValidationError as e:
            logger.warning("拍卖物品或规则无效 | room=%s | %s", room.room_id, e.errors())
            return RoomResult.fail(RoomError.invalid_input("拍卖物品或规则无效"))

        success = room_state.upload_item(room, item, rules)
        return self._outcome(success, "上传失败")

    def start_auction(self, user: User, room: Room) -> RoomResult[None]:
        denied = self._check(RoomAction.START_AUCTION, user, room)
        if denied:
            return denied

        success = room_state.start_auction(room, self.listing_delay)
        return self._outcome(success, "开始拍卖失败")

    def place_bid(self, user: User, room: Room, amount: AmountLike) -> RoomResult[None]:
        """出价。金额无法解析时按缺少金额处理，由出价规则拒绝。"""
        decimal_amount = _to_decimal(amount)
        params = BidParams(amount=decimal_amount) if decimal_amount is not None else None

        denied = self._check(RoomAction.PLACE_BID, user, room, params)
        if denied:
            return denied

        success = room_state.place_bid(room, user, decimal_amount)
        return self._outcome(success, "出价失败")

    def end_auction(self, user: User, room: Room) -> RoomResult[None]:
        denied = self._check(RoomAction.FORCE_END_AUCTION, user, room)
        if denied:
            return denied

        success = room_state.end_auction(room)
        return self._outcome(success, "结束拍卖失败")

    # ── 麦位操作 ──────────────────────────────────────────────────────

    def apply_for_microphone(self, user: User, room: Room) -> RoomResult[int]:
        """申请上麦，分配编号最小的空闲未锁定麦位，成功时返回麦位号。"""
        denied = self._check(RoomAction.APPLY_FOR_MICROPHONE, user, room)
        if denied:
            return denied

        mic = room.available_microphone()
        if mic is None:
            return RoomResult.fail(RoomError.operation_failed("没有可用麦位"))

        if room.assign_microphone(user, mic.seat_number):
            return RoomResult.ok(mic.seat_number)
        return RoomResult.fail(RoomError.operation_failed("上麦失败"))

    def accept_microphone_request(
        self,
        operator: User,
        target: User,
        room: Room,
        seat_number: int | None = None,
    ) -> RoomResult[int]:
        """房主把用户安排到麦位，可以占用锁定的空麦位。

        Args:
            operator: 操作者，必须是房主。
            target: 被安排上麦的用户。
            room: 房间。
            seat_number: 指定麦位；为 None 时选择编号最小的空闲未锁定麦位。
        """
        params = SeatParams(target_user_id=target.user_id, seat_number=seat_number)
        denied = self._check(RoomAction.ACCEPT_MICROPHONE_REQUEST, operator, room, params)
        if denied:
            return denied

        if room.find_seat_of(target.user_id) is not None:
            return RoomResult.fail(RoomError.operation_failed("该用户已经在麦位上了"))

        if seat_number is None:
            mic = room.available_microphone()
            if mic is None:
                return RoomResult.fail(RoomError.operation_failed("没有可用麦位"))
            seat_number = mic.seat_number

        if room.assign_microphone(target, seat_number, allow_locked=True):
            return RoomResult.ok(seat_number)
        return RoomResult.fail(RoomError.operation_failed("上麦失败"))

    def leave_microphone(self, user: User, room: Room) -> RoomResult[None]:
        """主动下麦（无需权限检查）。"""
        if not user.on_microphone or room.find_seat_of(user.user_id) is None:
            return RoomResult.fail(RoomError.invalid_state("您不在麦位上"))
        if user is room.owner:
            return RoomResult.fail(RoomError.invalid_state("房主不能离开1号麦位"))

        room.remove_microphone(user.user_id)
        return RoomResult.ok()

    def kick_from_microphone(
        self,
        operator: User,
        target_user_id: str,
        room: Room,
    ) -> RoomResult[None]:
        denied = self._check(
            RoomAction.KICK_FROM_MICROPHONE, operator, room,
            KickParams(target_user_id=target_user_id),
        )
        if denied:
            return denied

        if target_user_id == room.owner.user_id:
            return RoomResult.fail(RoomError.operation_failed("不能将房主踢下麦"))
        if not room.remove_microphone(target_user_id):
            return RoomResult.fail(RoomError.operation_failed("该用户不在麦位上"))
        logger.info("踢下麦 | room=%s | operator=%s | target=%s", room.room_id, operator.nickname, target_user_id)
        return RoomResult.ok()

    # ── 消息操作 ──────────────────────────────────────────────────────

    def send_message(self, user: User, room: Room, content: str) -> RoomResult[None]:
        denied = self._check(RoomAction.SEND_MESSAGE, user, room)
        if denied:
            return denied

        room.add_message(user, content)
        return RoomResult.ok()

    def send_voice(self, user: User, room: Room) -> RoomResult[None]:
        denied = self._check(RoomAction.SEND_VOICE, user, room)
        if denied:
            return denied

        logger.info("🎤 %s 正在语音中... | room=%s", user.nickname, room.room_id)
        return RoomResult.ok()

    # ── 用户操作 ──────────────────────────────────────────────────────

    def join_room(self, user: User, room: Room) -> None:
        """加入房间（幂等）。"""
        room.add_user(user)

    def leave_room(self, user: User, room: Room) -> RoomResult[None]:
        """离开房间，在麦上时一并下麦。房主不能离开。"""
        if user is room.owner:
            return RoomResult.fail(RoomError.invalid_state("房主不能离开房间"))
        if not room.remove_user(user.user_id):
            return RoomResult.fail(RoomError.invalid_state("您不在房间内"))
        return RoomResult.ok()

    def change_role(self, user: User, new_role: UserRole) -> None:
        """切换角色。

        不经过权限中心，与其他修改操作不一致，是否需要加权限规则尚未确定。
        """
        old_role = user.role
        user.role = new_role
        logger.info(
            "👤 %s 切换角色：%s -> %s",
            user.nickname, old_role.display_name, new_role.display_name,
        )
