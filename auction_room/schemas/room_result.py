"""
auction_room.schemas.room_result
~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~~

房间操作的统一返回体。``RoomManager`` 的所有公开操作都返回 ``RoomResult``，
不向调用方抛出异常：要么成功（可携带数据），要么携带一个带分类的 ``RoomError``。
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class RoomErrorKind(str, Enum):
    """错误分类。"""

    PERMISSION_DENIED = "permission_denied"  # 权限中心拒绝
    OPERATION_FAILED = "operation_failed"    # 权限通过但状态机/领域操作拒绝
    INVALID_STATE = "invalid_state"          # 与权限无关的前置条件不满足
    INVALID_INPUT = "invalid_input"          # 预留：调用方数据格式错误


class RoomError(BaseModel):
    """带分类的错误信息。

    Attributes:
        kind: 错误分类。
        message: 人类可读的原因，权限拒绝时即为失败规则给出的原因。
    """

    kind: RoomErrorKind = Field(..., description="错误分类")
    message: str = Field(..., description="错误原因")

    @classmethod
    def permission_denied(cls, message: str) -> RoomError:
        return cls(kind=RoomErrorKind.PERMISSION_DENIED, message=message)

    @classmethod
    def operation_failed(cls, message: str) -> RoomError:
        return cls(kind=RoomErrorKind.OPERATION_FAILED, message=message)

    @classmethod
    def invalid_state(cls, message: str) -> RoomError:
        return cls(kind=RoomErrorKind.INVALID_STATE, message=message)

    @classmethod
    def invalid_input(cls, message: str) -> RoomError:
        return cls(kind=RoomErrorKind.INVALID_INPUT, message=message)

    def __str__(self) -> str:
        return self.message


class RoomResult(BaseModel, Generic[T]):
    """房间操作结果。

    .. code-block:: python

        result = manager.place_bid(bidder, room, 120)
        if result.is_ok:
            ...
        else:
            print(result.error.kind, result.error.message)

    Attributes:
        data: 成功时携带的数据（如分配到的麦位号），无数据时为 None。
        error: 失败时的错误信息，成功时为 None。
    """

    data: T | None = Field(default=None, description="成功时的业务数据")
    error: RoomError | None = Field(default=None, description="失败时的错误")

    @classmethod
    def ok(cls, data: Any = None) -> RoomResult[Any]:
        """快捷构造成功结果。"""
        return cls(data=data)

    @classmethod
    def fail(cls, error: RoomError) -> RoomResult[Any]:
        """快捷构造失败结果。"""
        return cls(error=error)

    @property
    def is_ok(self) -> bool:
        return self.error is None

    @property
    def error_kind(self) -> RoomErrorKind | None:
        return self.error.kind if self.error else None
