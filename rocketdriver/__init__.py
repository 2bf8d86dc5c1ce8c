"""
rocketdriver - Rocket.Chat 风格实时聊天服务的 asyncio 客户端驱动

模块概述：
    本文件是 rocketdriver 包的入口文件，定义了包的元信息并导出最常用的类。

    驱动的核心功能包括：
    - 连接/认证生命周期（带可取消的连接超时）
    - 方法调用结果缓存（房间 ID 解析、私聊房间创建等只读查询）
    - 消息流订阅的单例复用
    - 有序的消息过滤管道（决定哪些事件会到达应用回调）
    - 已加入房间的集合维护
"""

# 版本号，遵循语义化版本规范（主版本.次版本.修订号）
__version__ = "0.1.0"

# 项目 logo 表情符号，用于 CLI 输出
__logo__ = "🚀"

from rocketdriver.driver import Driver

__all__ = ["Driver", "__version__", "__logo__"]
