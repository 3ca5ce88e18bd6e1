"""
叙事快照数据模型
分析引擎的输入：人物、章节、情节事件组成的只读快照
"""

from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from typing import Any

from exceptions import SnapshotValidationError


class CharacterRole(str, Enum):
    """人物角色"""

    PROTAGONIST = "protagonist"
    ANTAGONIST = "antagonist"
    SUPPORTING = "supporting"
    MINOR = "minor"


class EventType(str, Enum):
    """叙事节拍类型（结构分析与情节线两套词汇的并集）"""

    INCITING_INCIDENT = "inciting_incident"
    RISING_ACTION = "rising_action"
    CLIMAX = "climax"
    FALLING_ACTION = "falling_action"
    RESOLUTION = "resolution"
    SETUP = "setup"
    CONFLICT = "conflict"


# 情节线词汇 -> 结构分析词汇；setup 在结构词汇中没有对应项，保持原样
THREAD_BEAT_MAPPING: dict[EventType, EventType] = {
    EventType.SETUP: EventType.SETUP,
    EventType.CONFLICT: EventType.RISING_ACTION,
    EventType.CLIMAX: EventType.CLIMAX,
    EventType.RESOLUTION: EventType.RESOLUTION,
}


def _normalize_token(value: Any) -> str:
    return str(value).strip().lower().replace("-", "_").replace(" ", "_")


def normalize_event_type(value: Any, unify_thread_beats: bool = False) -> EventType:
    """把各种写法的事件类型规范化为 EventType

    Args:
        value: 原始类型值，如 "rising-action"、"Inciting Incident"
        unify_thread_beats: 是否按 THREAD_BEAT_MAPPING 映射情节线词汇

    Raises:
        SnapshotValidationError: 类型不在封闭词汇表中
    """
    if isinstance(value, EventType):
        event_type = value
    else:
        try:
            event_type = EventType(_normalize_token(value))
        except ValueError:
            raise SnapshotValidationError(f"Unknown plot event type: {value!r}") from None

    if unify_thread_beats:
        return THREAD_BEAT_MAPPING.get(event_type, event_type)
    return event_type


def normalize_role(value: Any) -> CharacterRole:
    """规范化人物角色"""
    if isinstance(value, CharacterRole):
        return value
    try:
        return CharacterRole(_normalize_token(value))
    except ValueError:
        raise SnapshotValidationError(f"Unknown character role: {value!r}") from None


def _pick(data: dict[str, Any], *keys: str, default: Any = None) -> Any:
    """按顺序读取第一个存在的键（兼容 camelCase 与 snake_case）"""
    for key in keys:
        if key in data:
            return data[key]
    return default


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise SnapshotValidationError(f"{what} must be an object, got {type(data).__name__}")
    return data


def _require_id(data: dict[str, Any], what: str) -> str:
    value = data.get("id")
    if value is None or str(value) == "":
        raise SnapshotValidationError(f"{what} is missing an id")
    return str(value)


def _require_list(value: Any, what: str) -> list:
    if value is None:
        return []
    if not isinstance(value, (list, tuple)):
        raise SnapshotValidationError(f"{what} must be a list")
    return list(value)


def parse_event_order(value: Any, what: str = "Plot event") -> int:
    """解析事件的章内顺序，缺省为 0"""
    if value is None or value == "":
        return 0
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise SnapshotValidationError(f"{what} order must be an integer: {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise SnapshotValidationError(f"{what} order must be an integer: {value!r}") from None


@dataclass(frozen=True)
class Relationship:
    """人物关系记录"""

    character_id: str
    type: str
    strength: int | None = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Relationship":
        data = _require_mapping(data, "Relationship")
        peer = _pick(data, "characterId", "character_id", "peerId", "peer_id")
        if peer is None:
            raise SnapshotValidationError("Relationship is missing a peer character id")
        strength = data.get("strength")
        if strength is not None and (isinstance(strength, bool) or not isinstance(strength, int)):
            raise SnapshotValidationError(f"Relationship strength must be an integer: {strength!r}")
        return cls(
            character_id=str(peer),
            type=str(data.get("type", "")),
            strength=strength,
            description=str(data.get("description") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "characterId": self.character_id,
            "type": self.type,
            "strength": self.strength,
            "description": self.description,
        }


@dataclass(frozen=True)
class PlotEvent:
    """情节事件，隶属于唯一的章节"""

    type: EventType
    description: str = ""
    id: str | None = None
    tension_level: int | None = None  # 情节线子系统中的张力 1-10
    order: int = 0

    def __post_init__(self):
        object.__setattr__(self, "type", normalize_event_type(self.type))

    @classmethod
    def from_dict(cls, data: dict[str, Any], unify_thread_beats: bool = False) -> "PlotEvent":
        data = _require_mapping(data, "Plot event")
        raw_type = _pick(data, "type", "event_type", "eventType")
        if raw_type is None:
            raise SnapshotValidationError(f"Plot event {data.get('id')!r} is missing a type")
        tension = _pick(data, "tensionLevel", "tension_level")
        if tension is not None and (isinstance(tension, bool) or not isinstance(tension, int)):
            raise SnapshotValidationError(f"Plot event tension level must be an integer: {tension!r}")
        event_id = data.get("id")
        return cls(
            type=normalize_event_type(raw_type, unify_thread_beats),
            description=str(_pick(data, "description", "title", default="") or ""),
            id=str(event_id) if event_id is not None else None,
            tension_level=tension,
            order=parse_event_order(
                _pick(data, "order", "order_index", "orderIndex"), f"Plot event {event_id!r}"
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "description": self.description,
            "tensionLevel": self.tension_level,
            "order": self.order,
        }


@dataclass(frozen=True)
class Chapter:
    """章节模型"""

    id: str
    number: int
    characters: tuple[str, ...] = ()
    plot_events: tuple[PlotEvent, ...] = ()
    title: str = ""

    def __post_init__(self):
        object.__setattr__(self, "characters", tuple(self.characters))
        object.__setattr__(self, "plot_events", tuple(self.plot_events))

    def __str__(self) -> str:
        return f"Chapter({self.number}, events={len(self.plot_events)})"

    @property
    def event_types(self) -> set[EventType]:
        """本章出现的事件类型集合"""
        return {event.type for event in self.plot_events}

    def has_event(self, *types: EventType) -> bool:
        """本章是否包含任一给定类型的事件"""
        return any(event.type in types for event in self.plot_events)

    @classmethod
    def from_dict(cls, data: dict[str, Any], unify_thread_beats: bool = False) -> "Chapter":
        data = _require_mapping(data, "Chapter")
        chapter_id = _require_id(data, "Chapter")
        number = _pick(data, "number", "chapterNumber", "chapter_number")
        if isinstance(number, bool) or not isinstance(number, int):
            raise SnapshotValidationError(
                f"Chapter {chapter_id!r} must have an integer number, got {number!r}",
                entity_id=chapter_id,
            )
        events = _require_list(_pick(data, "plotEvents", "plot_events"), f"Chapter {chapter_id!r} plot events")
        characters = _require_list(data.get("characters"), f"Chapter {chapter_id!r} characters")
        return cls(
            id=chapter_id,
            number=number,
            characters=tuple(str(c) for c in characters),
            plot_events=tuple(PlotEvent.from_dict(e, unify_thread_beats) for e in events),
            title=str(data.get("title") or ""),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "number": self.number,
            "title": self.title,
            "characters": list(self.characters),
            "plotEvents": [event.to_dict() for event in self.plot_events],
        }


@dataclass(frozen=True)
class Character:
    """人物模型"""

    id: str
    name: str
    role: CharacterRole
    description: str = ""
    relationships: tuple[Relationship, ...] = ()
    appearances: tuple[str, ...] = ()  # 出现的章节ID

    def __post_init__(self):
        object.__setattr__(self, "role", normalize_role(self.role))
        object.__setattr__(self, "relationships", tuple(self.relationships))
        object.__setattr__(self, "appearances", tuple(self.appearances))

    def __str__(self) -> str:
        return f"Character({self.name}, appearances={len(self.appearances)})"

    @property
    def is_major(self) -> bool:
        """主角或反派"""
        return self.role in (CharacterRole.PROTAGONIST, CharacterRole.ANTAGONIST)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Character":
        data = _require_mapping(data, "Character")
        character_id = _require_id(data, "Character")
        if "role" not in data:
            raise SnapshotValidationError(f"Character {character_id!r} is missing a role", entity_id=character_id)
        relationships = _require_list(data.get("relationships"), f"Character {character_id!r} relationships")
        appearances = _require_list(data.get("appearances"), f"Character {character_id!r} appearances")
        return cls(
            id=character_id,
            name=str(data.get("name") or character_id),
            role=normalize_role(data["role"]),
            description=str(data.get("description") or ""),
            relationships=tuple(Relationship.from_dict(r) for r in relationships),
            appearances=tuple(str(a) for a in appearances),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role.value,
            "description": self.description,
            "relationships": [r.to_dict() for r in self.relationships],
            "appearances": list(self.appearances),
        }


@dataclass(frozen=True)
class NarrativeSnapshot:
    """叙事快照（分析引擎的唯一输入）

    章节在构造时按编号升序排列；一次分析过程中快照不可变。
    """

    characters: tuple[Character, ...] = ()
    chapters: tuple[Chapter, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "characters", tuple(self.characters))
        object.__setattr__(self, "chapters", tuple(sorted(self.chapters, key=lambda ch: ch.number)))

    @cached_property
    def chapters_by_id(self) -> dict[str, Chapter]:
        return {chapter.id: chapter for chapter in self.chapters}

    @property
    def total_chapters(self) -> int:
        return len(self.chapters)

    @property
    def all_events(self) -> list[tuple[Chapter, PlotEvent]]:
        """按章节顺序展开的 (章节, 事件) 列表"""
        return [(chapter, event) for chapter in self.chapters for event in chapter.plot_events]

    def event_types(self) -> set[EventType]:
        """全书出现过的事件类型"""
        types: set[EventType] = set()
        for chapter in self.chapters:
            types |= chapter.event_types
        return types

    def appearance_chapters(self, character: Character) -> list[Chapter]:
        """人物出场的章节，按编号升序"""
        appearances = set(character.appearances)
        return [chapter for chapter in self.chapters if chapter.id in appearances]

    @property
    def is_empty(self) -> bool:
        return not self.characters and not self.chapters

    @classmethod
    def from_dict(cls, data: dict[str, Any], unify_thread_beats: bool = False) -> "NarrativeSnapshot":
        """从松散类型的字典构建快照，格式错误时抛出 SnapshotValidationError"""
        data = _require_mapping(data, "Snapshot")
        characters = _require_list(data.get("characters"), "Snapshot characters")
        chapters = _require_list(data.get("chapters"), "Snapshot chapters")
        return cls(
            characters=tuple(Character.from_dict(c) for c in characters),
            chapters=tuple(Chapter.from_dict(ch, unify_thread_beats) for ch in chapters),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "characters": [c.to_dict() for c in self.characters],
            "chapters": [ch.to_dict() for ch in self.chapters],
        }
