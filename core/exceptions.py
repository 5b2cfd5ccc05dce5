"""
Daily Rhythm 异常定义模块。

定义系统中所有自定义异常的层次结构：
- RhythmError: 基类，所有已知错误，均可恢复
- ModeLocked: 非 Working 模式下尝试启动计时
- EntityTerminal: 对已完成 (Done) 的条目执行变更
- IndexOutOfRange: 排序/选择越界
- NothingToUndo: 撤销栈为空
- PersistenceError: 读写持久化文件失败
- NotFound: 引用的条目或日期不存在
- InvalidInput: 输入值非法
- ConfigError: runtime.yaml 配置非法

引擎在抛出任何异常之前不会修改状态（全有或全无）。
"""
from typing import Optional


class RhythmError(Exception):
    """Daily Rhythm 基础异常类。

    所有系统内已知错误都继承自此类。
    捕获此类可以处理所有预期的错误情况。
    """

    kind = "rhythm_error"

    def __init__(self, message: str, hint: Optional[str] = None):
        """
        Args:
            message: 错误描述
            hint: 对用户的操作建议
        """
        super().__init__(message)
        self.message = message
        self.hint = hint

    def get_user_message(self) -> str:
        """返回用户友好的错误消息。"""
        if self.hint:
            return f"{self.message}\n💡 建议: {self.hint}"
        return self.message


class ModeLocked(RhythmError):
    """当前模式不是 Working，禁止启动或恢复计时。"""

    kind = "mode_locked"

    def __init__(self, mode: str):
        super().__init__(
            f"Cannot start a timer in '{mode}' mode",
            hint="先切换到 working 模式",
        )
        self.mode = mode


class EntityTerminal(RhythmError):
    """条目已完成，状态不可再变更。"""

    kind = "entity_terminal"

    def __init__(self, entity_id: str):
        super().__init__(f"Entity {entity_id} is done and cannot change")
        self.entity_id = entity_id


class IndexOutOfRange(RhythmError):
    """排序或选择的下标越界，或不相邻。"""

    kind = "index_out_of_range"

    def __init__(self, message: str):
        super().__init__(message)


class NothingToUndo(RhythmError):
    """撤销栈为空。"""

    kind = "nothing_to_undo"

    def __init__(self):
        super().__init__("Nothing to undo")


class PersistenceError(RhythmError):
    """持久化读写失败。

    解析失败时原文件已备份，path 指向原文件。
    """

    kind = "persistence_error"

    def __init__(self, message: str, path: Optional[str] = None):
        hint = f"请检查数据文件: {path}" if path else None
        super().__init__(message, hint)
        self.path = path


class NotFound(RhythmError):
    """引用的条目或日期不存在。"""

    kind = "not_found"

    def __init__(self, what: str):
        super().__init__(f"Not found: {what}")
        self.what = what


class InvalidInput(RhythmError):
    """输入值非法，例如空标题。"""

    kind = "invalid_input"


class ConfigError(RhythmError):
    """配置文件错误。

    当 runtime.yaml 格式错误或内容非法时抛出。
    """

    kind = "config_error"

    def __init__(self, message: str, config_path: Optional[str] = None):
        hint = f"请检查配置文件: {config_path}" if config_path else "请检查配置文件格式"
        super().__init__(message, hint)
        self.config_path = config_path
