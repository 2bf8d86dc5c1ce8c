"""
工具函数模块 - 提供 rocketdriver 项目全局通用的辅助函数。
"""

from rocketdriver.utils.helpers import ensure_dir, get_data_path, strip_protocol, parse_date

__all__ = ["ensure_dir", "get_data_path", "strip_protocol", "parse_date"]
