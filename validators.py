"""
输入验证模块
在编排边界校验叙事快照，以及命令行/配置输入
"""

import os
from collections import Counter
from pathlib import Path

from config import SUPPORTED_API_PROVIDERS
from exceptions import ConfigurationError, FileValidationError, SnapshotValidationError
from models.narrative import NarrativeSnapshot

TENSION_LEVEL_RANGE = (1, 10)
RELATIONSHIP_STRENGTH_RANGE = (1, 10)


def _duplicates(values) -> list:
    return sorted(value for value, count in Counter(values).items() if count > 1)


def validate_snapshot(snapshot: NarrativeSnapshot) -> NarrativeSnapshot:
    """校验叙事快照的不变量

    Args:
        snapshot: 待校验的快照

    Returns:
        NarrativeSnapshot: 原快照（未修改）

    Raises:
        SnapshotValidationError: 任一引用或取值不合法
    """
    if not isinstance(snapshot, NarrativeSnapshot):
        raise SnapshotValidationError(
            f"Expected a NarrativeSnapshot, got {type(snapshot).__name__}"
        )

    character_ids = [c.id for c in snapshot.characters]
    chapter_ids = [ch.id for ch in snapshot.chapters]

    duplicated = _duplicates(character_ids)
    if duplicated:
        raise SnapshotValidationError(f"Duplicate character ids: {duplicated}", entity_id=duplicated[0])

    duplicated = _duplicates(chapter_ids)
    if duplicated:
        raise SnapshotValidationError(f"Duplicate chapter ids: {duplicated}", entity_id=duplicated[0])

    duplicated = _duplicates(ch.number for ch in snapshot.chapters)
    if duplicated:
        raise SnapshotValidationError(f"Duplicate chapter numbers: {duplicated}")

    known_characters = set(character_ids)
    known_chapters = set(chapter_ids)

    for character in snapshot.characters:
        missing = [a for a in character.appearances if a not in known_chapters]
        if missing:
            raise SnapshotValidationError(
                f'Character "{character.name}" appears in unknown chapters: {missing}',
                entity_id=character.id,
            )
        duplicated = _duplicates(character.appearances)
        if duplicated:
            raise SnapshotValidationError(
                f'Character "{character.name}" lists chapters more than once: {duplicated}',
                entity_id=character.id,
            )
        for relationship in character.relationships:
            if relationship.character_id == character.id:
                raise SnapshotValidationError(
                    f'Character "{character.name}" has a relationship with itself',
                    entity_id=character.id,
                )
            if relationship.character_id not in known_characters:
                raise SnapshotValidationError(
                    f'Character "{character.name}" references unknown character '
                    f"{relationship.character_id!r}",
                    entity_id=character.id,
                )
            strength = relationship.strength
            weakest, strongest = RELATIONSHIP_STRENGTH_RANGE
            if strength is not None and not weakest <= strength <= strongest:
                raise SnapshotValidationError(
                    f'Character "{character.name}" has relationship strength {strength} '
                    f"outside [{weakest}, {strongest}]",
                    entity_id=character.id,
                )

    low, high = TENSION_LEVEL_RANGE
    event_ids = []
    for chapter in snapshot.chapters:
        unknown = [c for c in chapter.characters if c not in known_characters]
        if unknown:
            raise SnapshotValidationError(
                f"Chapter {chapter.number} references unknown characters: {unknown}",
                entity_id=chapter.id,
            )
        for event in chapter.plot_events:
            if event.tension_level is not None and not low <= event.tension_level <= high:
                raise SnapshotValidationError(
                    f"Plot event in chapter {chapter.number} has tension level "
                    f"{event.tension_level} outside [{low}, {high}]",
                    entity_id=event.id or chapter.id,
                )
            if event.id is not None:
                event_ids.append(event.id)

    duplicated = _duplicates(event_ids)
    if duplicated:
        raise SnapshotValidationError(f"Duplicate plot event ids: {duplicated}", entity_id=duplicated[0])

    return snapshot


def validate_file_path(
    file_path: str | Path,
    allowed_extensions: list | None = None,
    max_size_mb: int | None = None,
) -> Path:
    """验证文件路径的安全性

    Args:
        file_path: 文件路径
        allowed_extensions: 允许的文件扩展名列表，如['.json']
        max_size_mb: 最大文件大小（MB）

    Returns:
        Path: 验证后的Path对象

    Raises:
        FileValidationError: 文件验证失败
    """
    if isinstance(file_path, Path):
        file_path = str(file_path)

    if not file_path or not isinstance(file_path, str):
        raise FileValidationError("文件路径不能为空")

    # 检查路径遍历攻击
    normalized_path = os.path.normpath(file_path)
    if ".." in normalized_path.split(os.sep):
        raise FileValidationError("检测到不安全的路径遍历")

    path_obj = Path(file_path)

    if not path_obj.exists():
        raise FileValidationError(f"文件不存在: {file_path}")

    if not path_obj.is_file():
        raise FileValidationError(f"路径不是文件: {file_path}")

    if allowed_extensions:
        ext = path_obj.suffix.lower()
        if ext not in allowed_extensions:
            raise FileValidationError(
                f"不支持的文件扩展名: {ext}. 支持的扩展名: {', '.join(allowed_extensions)}"
            )

    if max_size_mb is not None:
        size_mb = path_obj.stat().st_size / (1024 * 1024)
        if size_mb > max_size_mb:
            raise FileValidationError(f"文件过大: {size_mb:.2f}MB. 最大允许: {max_size_mb}MB")

    return path_obj


def validate_api_provider(provider: str) -> str:
    """验证API提供商

    Args:
        provider: API提供商名称

    Returns:
        str: 验证后的提供商名称（小写）
    """
    if not provider or not isinstance(provider, str):
        raise ConfigurationError("API提供商不能为空")

    provider = provider.lower()
    if provider not in SUPPORTED_API_PROVIDERS:
        raise ConfigurationError(
            f"不支持的API提供商: {provider}. 支持的提供商: {', '.join(SUPPORTED_API_PROVIDERS)}"
        )

    return provider
