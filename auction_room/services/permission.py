"""
auction_room.services.permission
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

权限中心 —— 基于规则引擎。

每条规则绑定一个操作，带优先级和一个只读判断函数。引擎按优先级从高到低
逐条判断，第一条拒绝的规则决定结果；全部通过则允许。某个操作没有注册任何
规则时默认拒绝。

规则集以数据形式声明在 ``DEFAULT_RULES`` 中，可以脱离引擎单独测试。
"""
from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from decimal import Decimal
from operator import attrgetter
from typing import TYPE_CHECKING, Union

from auction_room.core.logging import get_logger
from auction_room.schemas.room_models import RoomAction, RoomPhase, UserRole

if TYPE_CHECKING:
    from auction_room.services.room import Room, User

logger = get_logger(__name__)

UNAVAILABLE_REASON: str = "❌ 该操作暂未开放"


# ── 判断结果 ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PermissionResult:
    """权限判断结果：允许，或带原因的拒绝。"""

    allowed: bool
    reason: str | None = None

    @classmethod
    def allow(cls) -> PermissionResult:
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> PermissionResult:
        return cls(allowed=False, reason=reason)

    @property
    def denied_reason(self) -> str | None:
        return None if self.allowed else self.reason


ALLOWED = PermissionResult.allow()


# ── 操作参数 ──────────────────────────────────────────────────────────

@dataclass(frozen=True)
class BidParams:
    """出价金额。"""

    amount: Decimal


@dataclass(frozen=True)
class KickParams:
    """被踢下麦的用户。"""

    target_user_id: str


@dataclass(frozen=True)
class SeatParams:
    """房主显式分配麦位。``seat_number`` 为 None 时由房间挑选。"""

    target_user_id: str
    seat_number: int | None = None


ActionParams = Union[BidParams, KickParams, SeatParams, None]


@dataclass(frozen=True)
class PermissionContext:
    """一次权限判断的输入。规则只能读取，不能修改其中任何对象。"""

    user: User
    room: Room
    action: RoomAction
    params: ActionParams = None


RuleCheck = Callable[[PermissionContext], PermissionResult]


@dataclass(frozen=True)
class PermissionRule:
    """一条权限规则。

    Attributes:
        action: 规则适用的操作。
        priority: 优先级，数值越大越先判断；相同优先级保持注册顺序。
        description: 规则说明。
        check: 只读判断函数。
    """

    action: RoomAction
    priority: int
    description: str
    check: RuleCheck


# ── 规则判断函数 ──────────────────────────────────────────────────────

def _is_owner(ctx: PermissionContext) -> bool:
    return ctx.user.user_id == ctx.room.owner.user_id


def _owner_only(reason: str) -> RuleCheck:
    def check(ctx: PermissionContext) -> PermissionResult:
        return ALLOWED if _is_owner(ctx) else PermissionResult.deny(reason)
    return check


def _bid_requires_auctioning(ctx: PermissionContext) -> PermissionResult:
    if ctx.room.phase is not RoomPhase.AUCTIONING:
        return PermissionResult.deny("❌ 当前不在拍卖阶段，无法出价")
    return ALLOWED


def _no_self_bid(ctx: PermissionContext) -> PermissionResult:
    item = ctx.room.current_item
    if (
        ctx.user.role is UserRole.AUCTIONEER
        and item is not None
        and ctx.user.user_id == item.auctioneer_id
    ):
        return PermissionResult.deny("❌ 您是拍卖人，不能对自己的物品出价")
    return ALLOWED


def _viewer_cannot_bid(ctx: PermissionContext) -> PermissionResult:
    if ctx.user.role is UserRole.VIEWER:
        return PermissionResult.deny("❌ 观众无法出价，请升级为竞拍者")
    return ALLOWED


def _bid_meets_floor(ctx: PermissionContext) -> PermissionResult:
    params = ctx.params
    if not isinstance(params, BidParams) or not isinstance(params.amount, Decimal):
        return PermissionResult.deny("❌ 出价金额无效")
    if not params.amount.is_finite():
        return PermissionResult.deny("❌ 出价金额无效")

    min_valid_price = ctx.room.current_price + ctx.room.rules.increment_step
    if params.amount < min_valid_price:
        return PermissionResult.deny(f"❌ 出价至少为 ¥{min_valid_price}")
    return ALLOWED


def _start_requires_pre_auction(ctx: PermissionContext) -> PermissionResult:
    if ctx.room.phase not in (RoomPhase.PREPARING, RoomPhase.LISTING):
        return PermissionResult.deny("❌ 拍卖已经开始或已结束")
    return ALLOWED


def _start_requires_item(ctx: PermissionContext) -> PermissionResult:
    if ctx.room.current_item is None:
        return PermissionResult.deny("❌ 请先上传拍卖物品")
    return ALLOWED


def _upload_requires_preparing(ctx: PermissionContext) -> PermissionResult:
    if ctx.room.phase is not RoomPhase.PREPARING:
        return PermissionResult.deny("❌ 只能在准备阶段上传物品")
    return ALLOWED


def _upload_requires_auctioneer(ctx: PermissionContext) -> PermissionResult:
    if ctx.user.role is not UserRole.AUCTIONEER:
        return PermissionResult.deny("❌ 只有拍卖人可以上传物品")
    return ALLOWED


def _upload_requires_microphone(ctx: PermissionContext) -> PermissionResult:
    if not ctx.user.on_microphone:
        return PermissionResult.deny("❌ 请先上麦再上传物品")
    return ALLOWED


def _seat_available(ctx: PermissionContext) -> PermissionResult:
    if ctx.room.available_microphone() is None:
        return PermissionResult.deny("❌ 麦位已满，请稍后再试")
    return ALLOWED


def _not_already_seated(ctx: PermissionContext) -> PermissionResult:
    if ctx.user.on_microphone:
        return PermissionResult.deny("❌ 您已经在麦位上了")
    return ALLOWED


def _end_requires_auctioning(ctx: PermissionContext) -> PermissionResult:
    if ctx.room.phase is not RoomPhase.AUCTIONING:
        return PermissionResult.deny("❌ 拍卖未开始或已结束")
    return ALLOWED


def _voice_requires_microphone(ctx: PermissionContext) -> PermissionResult:
    if not ctx.user.on_microphone:
        return PermissionResult.deny("❌ 请先上麦才能语音交流")
    return ALLOWED


def _voice_requires_unmuted(ctx: PermissionContext) -> PermissionResult:
    if ctx.user.muted:
        return PermissionResult.deny("❌ 您已被禁言")
    return ALLOWED


def _always_allow(ctx: PermissionContext) -> PermissionResult:
    return ALLOWED


# ── 规则表 ────────────────────────────────────────────────────────────

DEFAULT_RULES: tuple[PermissionRule, ...] = (
    # 出价
    PermissionRule(RoomAction.PLACE_BID, 100, "只能在拍卖中状态出价", _bid_requires_auctioning),
    PermissionRule(RoomAction.PLACE_BID, 90, "拍卖人不能给自己出价", _no_self_bid),
    PermissionRule(RoomAction.PLACE_BID, 80, "观众不能出价", _viewer_cannot_bid),
    PermissionRule(RoomAction.PLACE_BID, 70, "出价金额必须满足要求", _bid_meets_floor),
    # 开始拍卖
    PermissionRule(
        RoomAction.START_AUCTION, 100, "只有房主能开始拍卖",
        _owner_only("❌ 只有房主可以开始拍卖"),
    ),
    PermissionRule(
        RoomAction.START_AUCTION, 90, "只能在准备阶段或上拍阶段开始",
        _start_requires_pre_auction,
    ),
    PermissionRule(RoomAction.START_AUCTION, 80, "必须有拍卖物品", _start_requires_item),
    # 上传物品
    PermissionRule(RoomAction.UPLOAD_ITEM, 100, "只能在准备阶段上传物品", _upload_requires_preparing),
    PermissionRule(RoomAction.UPLOAD_ITEM, 90, "只有拍卖人能上传物品", _upload_requires_auctioneer),
    PermissionRule(RoomAction.UPLOAD_ITEM, 80, "拍卖人必须在麦上", _upload_requires_microphone),
    # 上麦
    PermissionRule(RoomAction.APPLY_FOR_MICROPHONE, 100, "麦位必须有空位", _seat_available),
    PermissionRule(RoomAction.APPLY_FOR_MICROPHONE, 90, "不能重复上麦", _not_already_seated),
    # 麦位管理
    PermissionRule(
        RoomAction.ACCEPT_MICROPHONE_REQUEST, 100, "只有房主能同意上麦",
        _owner_only("❌ 只有房主可以管理麦位"),
    ),
    PermissionRule(
        RoomAction.KICK_FROM_MICROPHONE, 100, "只有房主能踢人下麦",
        _owner_only("❌ 只有房主可以管理麦位"),
    ),
    # 强制结束
    PermissionRule(
        RoomAction.FORCE_END_AUCTION, 100, "只有房主能强制结束",
        _owner_only("❌ 只有房主可以强制结束拍卖"),
    ),
    PermissionRule(RoomAction.FORCE_END_AUCTION, 90, "只能在拍卖中强制结束", _end_requires_auctioning),
    # 语音
    PermissionRule(RoomAction.SEND_VOICE, 100, "只有麦上用户可以发语音", _voice_requires_microphone),
    PermissionRule(RoomAction.SEND_VOICE, 90, "被禁言不能发语音", _voice_requires_unmuted),
    # 文字消息
    PermissionRule(RoomAction.SEND_MESSAGE, 100, "所有人都可以发文字消息", _always_allow),
)


# ── 规则引擎 ──────────────────────────────────────────────────────────

class PermissionRuleEngine:
    """按操作分组保存规则并执行判断。"""

    def __init__(self, rules: Iterable[PermissionRule] = DEFAULT_RULES) -> None:
        self._rules: dict[RoomAction, list[PermissionRule]] = {}
        for rule in rules:
            self.add_rule(rule)

    def add_rule(self, rule: PermissionRule) -> None:
        self._rules.setdefault(rule.action, []).append(rule)

    def rules_for(self, action: RoomAction) -> list[PermissionRule]:
        """某个操作的规则，按判断顺序排列（优先级降序，同级保持注册顺序）。"""
        # sorted 是稳定排序，reverse=True 不会打乱同优先级规则的相对顺序
        return sorted(self._rules.get(action, []), key=attrgetter("priority"), reverse=True)

    def evaluate(self, context: PermissionContext) -> PermissionResult:
        rules = self.rules_for(context.action)
        if not rules:
            return PermissionResult.deny(UNAVAILABLE_REASON)

        for rule in rules:
            result = rule.check(context)
            if not result.allowed:
                return result
        return ALLOWED


# ── 权限中心 ──────────────────────────────────────────────────────────

class PermissionCenter:
    """权限检查入口，包装一个 ``PermissionRuleEngine`` 并记录每次检查。

    由 ``RoomManager`` 显式创建和持有，不是全局单例。
    """

    def __init__(self, engine: PermissionRuleEngine | None = None) -> None:
        self.engine: PermissionRuleEngine = engine or PermissionRuleEngine()

    def check_permission(
        self,
        action: RoomAction,
        user: User,
        room: Room,
        params: ActionParams = None,
    ) -> PermissionResult:
        context = PermissionContext(user=user, room=room, action=action, params=params)
        result = self.engine.evaluate(context)
        logger.debug(
            "权限检查 | user=%s | action=%s | phase=%s -> %s %s",
            user.nickname,
            action.label,
            room.phase.display_name,
            "允许" if result.allowed else "拒绝",
            result.reason or "",
        )
        return result

    def can_perform(
        self,
        action: RoomAction,
        user: User,
        room: Room,
        params: ActionParams = None,
    ) -> bool:
        return self.check_permission(action, user, room, params).allowed

    def denied_reason(
        self,
        action: RoomAction,
        user: User,
        room: Room,
        params: ActionParams = None,
    ) -> str | None:
        return self.check_permission(action, user, room, params).denied_reason
