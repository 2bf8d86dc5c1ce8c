"""
REST API 模块 - 实时驱动之外的 HTTP 接口客户端。
"""

from rocketdriver.api.livechat import LivechatApi
from rocketdriver.api.rest import RestClient, RestLogin

__all__ = ["RestClient", "RestLogin", "LivechatApi"]
