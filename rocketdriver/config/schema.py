"""
配置数据模型定义 (config/schema.py)
=================================
本模块使用 Pydantic 定义驱动的完整配置结构。
所有配置项都有默认值，用户只需在 config.json 或环境变量中覆盖需要修改的部分。

配置来源的优先级（高 → 低）：
1. 调用时显式传入的参数（connect(**options)、respond_to_messages(**options)）
2. 配置文件 ~/.rocketdriver/config.json
3. 环境变量（ROCKETCHAT_ 前缀）
4. 本文件中的默认值

对于 Java 开发者：
- BaseSettings 类似于 Spring 的 @ConfigurationProperties，额外支持从环境变量读取配置
- merged() 相当于基于原对象构建一个覆盖了部分字段的新对象（不修改原对象）
"""

from typing import Any

from pydantic import Field, ConfigDict
from pydantic_settings import BaseSettings


class DriverConfig(BaseSettings):
    """
    驱动根配置类。

    时间类配置统一使用毫秒（与服务端和其他 SDK 的配置习惯一致）。

    环境变量示例:
        ROCKETCHAT_HOST=chat.example.com
        ROCKETCHAT_USE_SSL=true
        ROCKETCHAT_ROOMS='["general", "dev"]'
    """

    # ---- 连接 ----
    host: str = "localhost:3000"  # 服务器地址（协议前缀会在连接前去除）
    use_ssl: bool = False  # 是否使用 wss://
    timeout: int = 20000  # 连接超时（毫秒）

    # ---- 登录 ----
    username: str = ""
    password: str = ""
    ldap: bool = False  # 是否走 LDAP 目录服务登录
    ldap_options: dict[str, Any] = Field(default_factory=dict)

    # ---- 消息响应过滤 ----
    rooms: list[str] = Field(default_factory=lambda: ["GENERAL"])  # 自动加入的房间
    all_public: bool = False  # 监听所有公共房间（跳过成员过滤）
    dm: bool = False  # 是否响应私聊消息
    livechat: bool = False  # 是否响应 Livechat 消息
    edited: bool = False  # 是否响应被编辑过的消息

    # 发送消息时写入 bot.i 字段的集成标识
    integration_id: str = "py.rocketdriver"

    # ---- 方法缓存 ----
    room_cache_max_size: int = 10  # 房间 ID/名称缓存最大条目数
    room_cache_max_age: int = 300000  # 房间缓存有效期（毫秒，5 分钟）
    dm_cache_max_size: int = 10  # 私聊房间缓存最大条目数
    dm_cache_max_age: int = 100000  # 私聊房间缓存有效期（毫秒）

    model_config = ConfigDict(
        env_prefix="ROCKETCHAT_",
        env_nested_delimiter="__",
    )

    def merged(self, **options: Any) -> "DriverConfig":
        """
        返回合并了显式参数的新配置（显式参数优先于当前配置）。

        支持 camelCase 和 snake_case 两种键名（如 allPublic / all_public），
        值为 None 的参数被忽略，未知键名会被丢弃并记录警告。

        参数:
            **options: 需要覆盖的配置项

        返回:
            新的 DriverConfig 实例，原实例不变
        """
        from loguru import logger

        from rocketdriver.config.loader import camel_to_snake

        update: dict[str, Any] = {}
        for key, value in options.items():
            if value is None:
                continue
            name = camel_to_snake(key)
            if name not in type(self).model_fields:
                logger.warning(f"[config] Ignoring unknown option: {key}")
                continue
            update[name] = value
        if not update:
            return self.model_copy()
        return type(self).model_validate({**self.model_dump(), **update})

    def safe_dump(self) -> dict[str, Any]:
        """导出用于日志输出的配置字典（密码以 * 遮盖）。"""
        data = self.model_dump()
        if data.get("password"):
            data["password"] = "*" * len(data["password"])
        return data
