"""
快照组装服务模块
把持久化层导出的人物、章节以及情节线记录组装为 NarrativeSnapshot
"""
import copy
import logging
from pathlib import Path
from typing import Any, Optional

from exceptions import FileValidationError, SnapshotValidationError
from models.narrative import NarrativeSnapshot, parse_event_order
from utils import safe_read_json
from validators import validate_file_path

logger = logging.getLogger(__name__)


def _resolve_chapter(reference: Any, chapters: list[dict[str, Any]]) -> dict[str, Any]:
    """按章节ID或章节编号查找情节线事件所属的章节"""
    reference = str(reference)
    chapters = [chapter for chapter in chapters if isinstance(chapter, dict)]
    for chapter in chapters:
        if str(chapter.get("id")) == reference:
            return chapter
    for chapter in chapters:
        number = chapter.get("number", chapter.get("chapterNumber"))
        if number is not None and str(number) == reference:
            return chapter
    raise SnapshotValidationError(f"Plot event references unknown chapter {reference!r}", entity_id=reference)


def _event_order(event: Any) -> int:
    if not isinstance(event, dict):
        return 0
    for key in ("order", "order_index", "orderIndex"):
        if key in event:
            return parse_event_order(event[key], f"Plot event {event.get('id')!r}")
    return 0


def _require_records(records: Any, what: str) -> list[dict[str, Any]]:
    """确认输入是由对象组成的列表"""
    if records is None:
        return []
    if not isinstance(records, list):
        raise SnapshotValidationError(f"Snapshot {what} must be a list, got {type(records).__name__}")
    for index, record in enumerate(records):
        if not isinstance(record, dict):
            raise SnapshotValidationError(
                f"Snapshot {what}[{index}] must be an object, got {type(record).__name__}",
                entity_id=f"{what}[{index}]",
            )
    return records


def build_snapshot(
    characters: list[dict[str, Any]],
    chapters: list[dict[str, Any]],
    plot_threads: Optional[list[dict[str, Any]]] = None,
    unify_thread_beats: bool = False,
) -> NarrativeSnapshot:
    """组装叙事快照

    Args:
        characters: 人物记录
        chapters: 章节记录（可自带 plotEvents）
        plot_threads: 情节线记录，其事件通过 chapter_reference 归入章节
        unify_thread_beats: 是否把情节线词汇映射到结构分析词汇

    Returns:
        NarrativeSnapshot: 组装后的快照（尚未做跨实体校验）
    """
    characters = _require_records(characters, "characters")
    chapters = copy.deepcopy(_require_records(chapters, "chapters"))

    if plot_threads is not None and not isinstance(plot_threads, list):
        raise SnapshotValidationError("Snapshot plot threads must be a list")
    for thread in plot_threads or []:
        if not isinstance(thread, dict):
            raise SnapshotValidationError("Plot thread must be an object")
        thread_id = thread.get("id")
        thread_events = thread.get("events") or []
        if not isinstance(thread_events, list):
            raise SnapshotValidationError(f"Plot thread {thread_id!r} events must be a list", entity_id=thread_id)
        for event in thread_events:
            if not isinstance(event, dict):
                raise SnapshotValidationError(f"Plot thread {thread_id!r} has a malformed event")
            reference = event.get("chapter_reference", event.get("chapterReference"))
            if reference is None:
                raise SnapshotValidationError(
                    f"Plot event {event.get('id')!r} in thread {thread_id!r} is not attached to a chapter",
                    entity_id=event.get("id"),
                )
            chapter = _resolve_chapter(reference, chapters)
            if chapter.get("plotEvents") is None:
                chapter["plotEvents"] = []
            events = chapter["plotEvents"]
            if not isinstance(events, list):
                raise SnapshotValidationError(f"Chapter {chapter.get('id')!r} plot events must be a list")
            events.append(event)

    # 同一章内按 order 排序，保证事件顺序稳定
    for chapter in chapters:
        events = chapter.get("plotEvents")
        if isinstance(events, list):
            events.sort(key=_event_order)

    snapshot = NarrativeSnapshot.from_dict(
        {"characters": characters, "chapters": chapters},
        unify_thread_beats=unify_thread_beats,
    )
    logger.debug(
        f"组装快照: {len(snapshot.characters)} 个人物, {snapshot.total_chapters} 个章节, "
        f"{len(plot_threads or [])} 条情节线"
    )
    return snapshot


def load_snapshot(file_path: str | Path, unify_thread_beats: bool = False) -> NarrativeSnapshot:
    """从JSON文件加载快照

    文件格式: {"characters": [...], "chapters": [...], "plotThreads": [...]}，
    plotThreads 可省略。
    """
    path = validate_file_path(file_path, allowed_extensions=[".json"], max_size_mb=50)
    try:
        data = safe_read_json(path)
    except ValueError as e:
        raise FileValidationError(f"快照文件不是合法的JSON: {path}", details=str(e)) from e

    if not isinstance(data, dict):
        raise SnapshotValidationError("Snapshot file must contain a JSON object")

    logger.info(f"正在读取快照文件: {path}")
    return build_snapshot(
        characters=data.get("characters"),
        chapters=data.get("chapters"),
        plot_threads=data.get("plotThreads", data.get("plot_threads")),
        unify_thread_beats=unify_thread_beats,
    )
