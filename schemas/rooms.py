from typing import Optional

from pydantic import field_validator

from schemas.state import CamelModel

BCRYPT_MAX_BYTES = 72


class CreateRoomRequest(CamelModel):
    password: Optional[str] = None
    gm_id: Optional[str] = None

    @field_validator("password")
    @classmethod
    def password_fits_bcrypt(cls, value: Optional[str]) -> Optional[str]:
        if value and len(value.encode("utf-8")) > BCRYPT_MAX_BYTES:
            raise ValueError(f"password must be at most {BCRYPT_MAX_BYTES} bytes")
        return value or None

    @field_validator("gm_id")
    @classmethod
    def blank_gm_id_is_none(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class CreateRoomResponse(CamelModel):
    room_id: str
    gm_id: str


class RoomDetailsResponse(CamelModel):
    room_id: str
    has_password: bool
    player_count: int
    connected_count: int
