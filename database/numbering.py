"""标识与编号规则。

- generate_id: 默认实体ID（毫秒时间戳的36进制 + 随机后缀），
  仅在调用方未提供 id 时使用。
- next_contract_number: 合同编号 ``<前缀>-<年>-<4位序号>``。
  序号 = 当年已有编号数量 + 1，由扫描现有合同计算得到，
  不保存独立计数器。
"""
import secrets
import time
from typing import Iterable

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def generate_id() -> str:
    """生成默认实体ID。"""
    millis = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(11))
    return _to_base36(millis) + suffix


def contract_number_prefix(year: int, prefix: str = "CON") -> str:
    """某一年的合同编号前缀，例如 ``CON-2024``。"""
    return f"{prefix}-{year}"


def format_contract_number(year: int, sequence: int, prefix: str = "CON") -> str:
    """格式化合同编号，序号补齐4位。"""
    return f"{contract_number_prefix(year, prefix)}-{sequence:04d}"


def next_contract_number(existing_numbers: Iterable[str], year: int,
                         prefix: str = "CON") -> str:
    """根据已有编号计算下一个合同编号。

    Args:
        existing_numbers: 现有合同编号。
        year: 编号年份。
        prefix: 编号前缀。

    Returns:
        下一个合同编号。
    """
    year_prefix = contract_number_prefix(year, prefix)
    count = sum(1 for number in existing_numbers
                if number and number.startswith(year_prefix))
    return format_contract_number(year, count + 1, prefix)
