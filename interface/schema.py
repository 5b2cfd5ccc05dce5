"""
Input Schema for Daily Rhythm.

Defines strict input types for CLI arguments.
All free-form user inputs are validated here before reaching the engine.
"""
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, List, Tuple

from core.models import ContextMode


class InputType(Enum):
    """Allowed input types."""
    TEXT = "text"
    DURATION = "duration"  # 时长输入，如 "90m", "1.5h", "1小时30分钟"
    DATE = "date"  # 日期输入，如 "2026-01-26", "yesterday", "昨天"
    MODE = "mode"  # 情境模式，名称或 1-based 序号


@dataclass
class InputSchema:
    """Schema definition for a single input."""
    input_type: InputType
    prompt: str
    max_length: int = 200  # For TEXT type

    def validate(self, user_input: str) -> Tuple[bool, Any]:
        """
        Validate user input against this schema.

        Returns:
            Tuple of (is_valid, parsed_value or error_message)
        """
        user_input = str(user_input).strip()

        if self.input_type == InputType.TEXT:
            return self._validate_text(user_input)
        elif self.input_type == InputType.DURATION:
            return self._validate_duration(user_input)
        elif self.input_type == InputType.DATE:
            return self._validate_date(user_input)
        elif self.input_type == InputType.MODE:
            return self._validate_mode(user_input)
        return False, f"Unknown input type: {self.input_type}"

    def _validate_text(self, user_input: str) -> Tuple[bool, Any]:
        if len(user_input) < 1:
            return False, "输入不能为空"
        if len(user_input) > self.max_length:
            return False, f"输入过长 (最多{self.max_length}字符)"
        return True, user_input

    def _validate_duration(self, user_input: str) -> Tuple[bool, Any]:
        """
        Accepts: "1.5" (hours), "90m", "1h", "1h30m", "1小时30分钟", "45分钟".
        Returns a timedelta.
        """
        normalized = user_input.lower().replace(" ", "")

        # 纯数字按小时处理，与估时的小时单位一致
        if re.fullmatch(r"\d+(?:\.\d+)?", normalized):
            return True, timedelta(hours=float(normalized))

        cn_match = re.fullmatch(r"(?:(\d+(?:\.\d+)?)(?:小时|时))?(?:(\d+)(?:分钟|分))?", normalized)
        en_match = re.fullmatch(r"(?:(\d+(?:\.\d+)?)(?:hours?|hrs?|h))?(?:(\d+)(?:minutes?|mins?|m))?", normalized)
        match = cn_match or en_match
        if match and normalized and (match.group(1) or match.group(2)):
            hours = float(match.group(1) or 0)
            minutes = int(match.group(2) or 0)
            return True, timedelta(hours=hours, minutes=minutes)

        return False, "请输入时长，如: 1.5, 90m, 1h30m, 45分钟"

    def _validate_date(self, user_input: str) -> Tuple[bool, Any]:
        """Accepts ISO dates and a few relative words. Returns a date."""
        today = date.today()
        relative = {
            "today": today,
            "今天": today,
            "yesterday": today - timedelta(days=1),
            "昨天": today - timedelta(days=1),
        }
        if user_input.lower() in relative:
            return True, relative[user_input.lower()]
        try:
            return True, datetime.strptime(user_input, "%Y-%m-%d").date()
        except ValueError:
            return False, "请输入日期，如: 2026-01-26, yesterday"

    def _validate_mode(self, user_input: str) -> Tuple[bool, Any]:
        options: List[ContextMode] = list(ContextMode)
        if user_input.isdigit():
            idx = int(user_input) - 1  # 1-indexed for user
            if 0 <= idx < len(options):
                return True, options[idx]
        try:
            return True, ContextMode.parse(user_input)
        except ValueError:
            return False, f"请选择: {', '.join(m.value for m in options)}"


# Pre-defined schemas for CLI arguments
ALLOWED_SCHEMAS = {
    "title": InputSchema(InputType.TEXT, "Title"),
    "estimate": InputSchema(InputType.DURATION, "Estimate"),
    "date": InputSchema(InputType.DATE, "Date"),
    "mode": InputSchema(InputType.MODE, "Mode"),
}
