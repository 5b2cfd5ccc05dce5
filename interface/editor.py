"""
External editor for entity notes.

Only invoked on user request, never by a tick. Blocks the caller while the
editor is open.
"""
from typing import Optional, Union

import click

from core.logger import get_logger

logger = get_logger("editor")


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()


def edit_notes(text: str, editor: Optional[str] = None) -> Union[str, _Unchanged]:
    """
    打开 $EDITOR 编辑笔记。

    Returns:
        新文本；用户未保存或内容未变时返回 UNCHANGED
    """
    edited = click.edit(text or "", editor=editor, extension=".md", require_save=True)
    if edited is None:
        return UNCHANGED
    edited = edited.rstrip("\n")
    if edited == (text or "").rstrip("\n"):
        return UNCHANGED
    logger.info("Notes edited (%d chars)", len(edited))
    return edited
