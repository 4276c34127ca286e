"""Pydantic models for the room state tree.

Every model serialises with camelCase aliases because that is what the
browser client reads and writes; Python code uses the snake_case attributes.
"""
from typing import Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_wire(self, **kwargs) -> dict:
        return self.model_dump(mode="json", by_alias=True, **kwargs)


class Point(CamelModel):
    x: float = 0
    y: float = 0


class RoomConfig(CamelModel):
    grid_type: Literal["SQUARE"] = "SQUARE"
    grid_size: float = 50  # pixels
    grid_scale: float = 5  # units (ft)
    grid_visible: bool = True
    grid_color: str = "#000000"
    grid_opacity: float = 0.2
    snap_to_grid: bool = False
    scale_to_grid: bool = False


class MapConfig(CamelModel):
    url: str
    width: float
    height: float
    offset: Point = Field(default_factory=Point)
    scale: float = 1


class Token(CamelModel):
    id: str
    type: Literal["CHARACTER", "PROP", "MOUNT", "ATTACHMENT"]
    x: float
    y: float
    rotation: float = 0
    scale: float = 1
    layer: Literal["MAP", "FOG", "TOKEN", "ATTACHMENT"] = "TOKEN"
    owner_id: Optional[str] = None
    src: str  # URL or data URI
    label: str = ""
    visible: bool = True
    status_rings: List[str] = Field(default_factory=list)  # hex colours
    locked: bool = False
    attached_to_id: Optional[str] = None


class Drawing(CamelModel):
    """Freehand strokes, shapes and sticky notes.

    ``points`` is a flat list of x/y pairs; for ``text`` the first pair is the
    anchor position and ``fill`` holds the note background.
    """

    id: str
    type: Literal["brush", "line", "rect", "circle", "polygon", "erase", "text"]
    points: List[float]
    color: str
    width: float
    fill: Optional[str] = None
    text: Optional[str] = None
    layer: str = "DRAWING"


class FogShape(CamelModel):
    id: str
    type: Literal["rect", "polygon"]
    points: List[float]
    holes: List[List[float]] = Field(default_factory=list)  # subtractive
    visible: bool = True


class Presence(CamelModel):
    id: str
    display_name: str
    color: str
    cursor: Optional[Point] = None
    connected: bool = True
    is_gm: bool = False


class Timer(CamelModel):
    id: str
    label: str = "Timer"
    duration_sec: float
    remaining_sec: float
    status: Literal["PAUSED", "RUNNING", "FINISHED"]
    updated_at: float  # ms timestamp used by clients to resync countdowns


class RoomState(CamelModel):
    id: str
    gm_id: str
    password_hash: Optional[str] = None
    config: RoomConfig = Field(default_factory=RoomConfig)
    map: Optional[MapConfig] = None
    tokens: Dict[str, Token] = Field(default_factory=dict)
    drawings: Dict[str, Drawing] = Field(default_factory=dict)
    fog: List[FogShape] = Field(default_factory=list)
    timer: Optional[Timer] = None
    players: Dict[str, Presence] = Field(default_factory=dict)

    @classmethod
    def new(cls, room_id: str, gm_id: str, password_hash: Optional[str] = None) -> "RoomState":
        return cls(id=room_id, gm_id=gm_id, password_hash=password_hash)

    def snapshot(self) -> dict:
        """The state as sent to clients: everything except the password hash."""
        return self.to_wire(exclude={"password_hash"})
