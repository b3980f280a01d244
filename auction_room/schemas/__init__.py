"""
auction_room.schemas
~~~~~~~~~~~~~~~~~~~~
Pydantic records, enums and result types for the auction room.
"""
from auction_room.schemas.room_models import (
    AuctionItem,
    AuctionRules,
    Bid,
    Message,
    MessageKind,
    MicrophoneStatus,
    RoomAction,
    RoomInfoData,
    RoomPhase,
    SeatInfoData,
    UserRole,
)
from auction_room.schemas.room_result import RoomError, RoomErrorKind, RoomResult

# Call model_rebuild to resolve forward references in generic Pydantic models.
RoomResult.model_rebuild()

__all__ = [
    "AuctionItem",
    "AuctionRules",
    "Bid",
    "Message",
    "MessageKind",
    "MicrophoneStatus",
    "RoomAction",
    "RoomError",
    "RoomErrorKind",
    "RoomInfoData",
    "RoomPhase",
    "RoomResult",
    "SeatInfoData",
    "UserRole",
]
