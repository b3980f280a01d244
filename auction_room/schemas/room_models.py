"""
auction_room.schemas.room_models
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

拍卖房间的枚举与不可变记录（物品、规则、出价、消息）以及房间快照。

可变实体（``User`` / ``Microphone`` / ``Room``）位于 ``services/room.py``，
这里只放创建后不再修改的 Pydantic 模型。
"""
from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

from auction_room.core.config import settings

SYSTEM_USER_ID: str = "system"
SYSTEM_USERNAME: str = "系统"


def new_id() -> str:
    """生成实体唯一标识。"""
    return str(uuid.uuid4())


class UserRole(str, Enum):
    """房间内的用户角色。"""

    HOST = "host"
    AUCTIONEER = "auctioneer"
    BIDDER = "bidder"
    VIEWER = "viewer"

    @property
    def display_name(self) -> str:
        return {
            UserRole.HOST: "房主",
            UserRole.AUCTIONEER: "拍卖人",
            UserRole.BIDDER: "竞拍者",
            UserRole.VIEWER: "观众",
        }[self]


class RoomAction(str, Enum):
    """需要经过权限中心的房间操作。"""

    # 房间管理
    CREATE_ROOM = "createRoom"
    CLOSE_ROOM = "closeRoom"

    # 麦位管理
    APPLY_FOR_MICROPHONE = "applyForMicrophone"
    ACCEPT_MICROPHONE_REQUEST = "acceptMicrophoneRequest"
    KICK_FROM_MICROPHONE = "kickFromMicrophone"

    # 拍卖流程
    UPLOAD_ITEM = "uploadItem"
    SET_AUCTION_RULES = "setAuctionRules"
    START_AUCTION = "startAuction"
    PLACE_BID = "placeBid"
    FORCE_END_AUCTION = "forceEndAuction"

    # 交互
    SEND_MESSAGE = "sendMessage"
    SEND_VOICE = "sendVoice"

    @property
    def label(self) -> str:
        return _ACTION_LABELS[self]


_ACTION_LABELS: dict[RoomAction, str] = {
    RoomAction.CREATE_ROOM: "创建房间",
    RoomAction.CLOSE_ROOM: "关闭房间",
    RoomAction.APPLY_FOR_MICROPHONE: "申请上麦",
    RoomAction.ACCEPT_MICROPHONE_REQUEST: "同意上麦",
    RoomAction.KICK_FROM_MICROPHONE: "踢下麦",
    RoomAction.UPLOAD_ITEM: "上传物品",
    RoomAction.SET_AUCTION_RULES: "设置规则",
    RoomAction.START_AUCTION: "开始拍卖",
    RoomAction.PLACE_BID: "出价",
    RoomAction.FORCE_END_AUCTION: "强制结束",
    RoomAction.SEND_MESSAGE: "发消息",
    RoomAction.SEND_VOICE: "发语音",
}


class RoomPhase(str, Enum):
    """房间所处的拍卖阶段。初始为 PREPARING，CLOSED 之后可开启下一轮。"""

    PREPARING = "preparing"
    LISTING = "listing"
    AUCTIONING = "auctioning"
    CLOSED = "closed"

    @property
    def display_name(self) -> str:
        return {
            RoomPhase.PREPARING: "准备中",
            RoomPhase.LISTING: "上拍中",
            RoomPhase.AUCTIONING: "拍卖中",
            RoomPhase.CLOSED: "已定拍",
        }[self]

    @property
    def description(self) -> str:
        """阶段说明，供展示层使用。"""
        return {
            RoomPhase.PREPARING: "准备阶段：拍卖人可以上传物品并设置规则",
            RoomPhase.LISTING: "上拍中：展示拍卖物品，倒计时后自动开始",
            RoomPhase.AUCTIONING: "拍卖中：竞拍者可以出价，倒计时结束后定拍",
            RoomPhase.CLOSED: "已定拍：拍卖结束，可以开启下一轮",
        }[self]


class MicrophoneStatus(str, Enum):
    EMPTY = "empty"
    OCCUPIED = "occupied"
    LOCKED = "locked"


class MessageKind(str, Enum):
    TEXT = "text"
    BID = "bid"
    SYSTEM = "system"


class AuctionItem(BaseModel):
    """拍卖物品。上传后不可修改。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id, description="物品唯一标识")
    name: str = Field(..., description="物品名称")
    description: str = Field(default="", description="物品描述")
    auctioneer_id: str = Field(..., description="上传该物品的拍卖人 ID")
    auctioneer_name: str = Field(..., description="上传该物品的拍卖人昵称")

    @property
    def display_info(self) -> str:
        return f"{self.name} - {self.description}"


class AuctionRules(BaseModel):
    """拍卖规则，与当前物品一同上传。"""

    model_config = ConfigDict(frozen=True)

    start_price: Decimal = Field(..., ge=0, description="起拍价")
    increment_step: Decimal = Field(..., gt=0, description="加价幅度")
    countdown_seconds: int = Field(..., ge=0, description="倒计时秒数")

    @classmethod
    def default(cls) -> AuctionRules:
        """按配置生成默认规则。"""
        return cls(
            start_price=settings.DEFAULT_START_PRICE,
            increment_step=settings.DEFAULT_INCREMENT_STEP,
            countdown_seconds=settings.DEFAULT_COUNTDOWN_SECONDS,
        )


class Bid(BaseModel):
    """一次已被接受的出价。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    price: Decimal
    bidder_id: str
    bidder_name: str
    timestamp: datetime = Field(default_factory=datetime.now)

    @property
    def display_text(self) -> str:
        return f"{self.bidder_name} 出价 ¥{self.price}"


class Message(BaseModel):
    """房间消息流中的一条记录。"""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    username: str
    content: str
    kind: MessageKind = MessageKind.TEXT
    timestamp: datetime = Field(default_factory=datetime.now)

    @classmethod
    def system(cls, content: str) -> Message:
        """构造一条系统消息。"""
        return cls(
            user_id=SYSTEM_USER_ID,
            username=SYSTEM_USERNAME,
            content=content,
            kind=MessageKind.SYSTEM,
        )

    @property
    def display_text(self) -> str:
        if self.kind is MessageKind.BID:
            return f"💰 {self.content}"
        if self.kind is MessageKind.SYSTEM:
            return f"📢 {self.content}"
        return f"[{self.username}]: {self.content}"


class SeatInfoData(BaseModel):
    """单个麦位的摘要信息。"""

    seat_number: int = Field(..., description="麦位编号（从 1 开始）")
    status: MicrophoneStatus = Field(..., description="麦位状态")
    locked: bool = Field(..., description="是否锁定")
    occupant_id: str | None = Field(default=None, description="当前占用者 ID")


class RoomInfoData(BaseModel):
    """房间摘要信息数据类型"""

    room_id: str = Field(..., description="房间唯一标识")
    name: str = Field(..., description="房间名称")
    owner_id: str = Field(..., description="房主 ID")
    phase: RoomPhase = Field(..., description="当前阶段")
    online_count: int = Field(..., description="当前在房间内的人数")
    current_item: AuctionItem | None = Field(default=None, description="当前拍卖物品")
    current_price: Decimal = Field(..., description="当前价格（领先出价或起拍价）")
    current_leader: str | None = Field(default=None, description="当前领先者昵称")
    seats: list[SeatInfoData] = Field(default_factory=list, description="麦位列表")
