"""
REST 客户端模块 - 基于 httpx 的服务器 REST API 轻量封装。

实时驱动之外，部分管理类操作（查询用户、创建频道等）只能通过 REST API 完成。
本模块提供：
- login()/logout()：登录后把 X-Auth-Token / X-User-Id 写入默认请求头
- request()：通用请求方法（需要认证时自动先登录）
- get()/post()/put()/delete()：快捷方法
- users：用户列表查询辅助
- livechat：Livechat 访客接口（见 api/livechat.py）

所有接口都以 {host}/api/v1/ 为前缀。
"""

import json
import re
from dataclasses import dataclass
from typing import Any

import httpx
from loguru import logger

from rocketdriver.api.livechat import LivechatApi
from rocketdriver.config.schema import DriverConfig
from rocketdriver.errors import RestError
from rocketdriver.utils.helpers import ensure_protocol

USER_FIELDS = {"name": 1, "username": 1, "status": 1, "type": 1}


@dataclass
class RestLogin:
    """当前 REST 登录信息。"""

    username: str
    user_id: str
    auth_token: str
    result: dict[str, Any]


def is_success(status_code: int, ignore: re.Pattern | None = None) -> bool:
    """状态码不是 4xx/5xx 即视为成功；ignore 匹配状态码时同样视为成功。"""
    if status_code < 400:
        return True
    return bool(ignore and ignore.search(str(status_code)))


class RestClient:
    """
    REST API 客户端。

    属性:
        config: 驱动配置（host、use_ssl、默认凭证）
        url: API 基础地址（以 /api/v1/ 结尾）
        current_login: 当前登录信息（未登录时为 None）
        livechat: Livechat 接口辅助方法
    """

    def __init__(self, config: DriverConfig | None = None, http: httpx.AsyncClient | None = None):
        self.config = config or DriverConfig()
        self.url = f"{ensure_protocol(self.config.host, self.config.use_ssl)}/api/v1/"
        self._http = http or httpx.AsyncClient(timeout=30.0)
        self._headers: dict[str, str] = {"Content-Type": "application/json"}
        self.current_login: RestLogin | None = None
        self.livechat = LivechatApi(self)

    @property
    def logged_in(self) -> bool:
        return self.current_login is not None

    async def aclose(self) -> None:
        await self._http.aclose()

    # ---- 认证 ------------------------------------------------------------

    def set_auth(self, user_id: str, auth_token: str) -> None:
        self._headers["X-Auth-Token"] = auth_token
        self._headers["X-User-Id"] = user_id

    def clear_headers(self) -> None:
        self._headers.pop("X-Auth-Token", None)
        self._headers.pop("X-User-Id", None)

    async def login(self, username: str | None = None, password: str | None = None) -> dict[str, Any]:
        """
        登录 REST API。同一用户已登录时直接返回上次结果，不同用户则先登出。

        异常:
            RestError: 登录失败或返回数据中没有 authToken
        """
        username = username or self.config.username
        password = password or self.config.password
        logger.info(f"[API] Logging in {username}")
        if self.current_login is not None:
            logger.debug("[API] Already logged in")
            if self.current_login.username == username:
                return self.current_login.result
            await self.logout()

        result = await self.post("login", {"username": username, "password": password}, auth=False)
        data = result.get("data") if isinstance(result, dict) else None
        if not isinstance(data, dict) or not data.get("authToken"):
            raise RestError(f"[API] Login failed for {username}")

        self.current_login = RestLogin(
            username=username,
            user_id=str(data.get("userId") or ""),
            auth_token=str(data["authToken"]),
            result=result,
        )
        self.set_auth(self.current_login.user_id, self.current_login.auth_token)
        logger.info(f"[API] Logged in ID {self.current_login.user_id}")
        return result

    async def logout(self) -> None:
        if self.current_login is None:
            logger.debug("[API] Already logged out")
            return
        logger.info(f"[API] Logging out {self.current_login.username}")
        await self.get("logout", None, auth=True)
        self.clear_headers()
        self.current_login = None

    # ---- 请求 ------------------------------------------------------------

    async def request(
        self,
        method: str,
        endpoint: str,
        data: dict[str, Any] | None = None,
        auth: bool = True,
        ignore: re.Pattern | None = None,
    ) -> Any:
        """
        发送 REST 请求。

        参数:
            method: GET / POST / PUT / DELETE
            endpoint: 接口路径（不含 /api/v1/ 前缀），如 "chat.update"
            data: GET 时作为查询参数，其他方法作为 JSON 请求体
            auth: 是否需要认证（未登录时先用配置中的凭证登录）
            ignore: 匹配到的错误状态码视为成功

        返回:
            响应 JSON（DELETE 返回 httpx.Response）

        异常:
            RestError: 请求失败
        """
        method = method.upper()
        logger.debug(f"[API] {method} {endpoint}: {data}")
        if auth and not self.logged_in:
            await self.login()

        url = self.url + endpoint.lstrip("/")
        try:
            if method == "GET":
                response = await self._http.get(url, params=_query_params(data), headers=self._headers)
            else:
                response = await self._http.request(method, url, json=data or {}, headers=self._headers)
        except httpx.HTTPError as e:
            logger.error(f"[API] {method} error ({endpoint}): {e}")
            raise RestError(f"[API] {method} {endpoint} failed: {e}") from e

        if not is_success(response.status_code, ignore):
            body = _json_or_text(response)
            message = body.get("message") or body.get("error") if isinstance(body, dict) else body
            logger.error(f"[API] {method} error ({endpoint}): {message}")
            raise RestError(f"[API] {method} {endpoint} failed: {message}", response.status_code, body)

        logger.debug(f"[API] {method} {endpoint} result {response.status_code}")
        return response if method == "DELETE" else _json_or_text(response)

    async def get(self, endpoint: str, data: dict[str, Any] | None = None, auth: bool = True,
                  ignore: re.Pattern | None = None) -> Any:
        return await self.request("GET", endpoint, data, auth, ignore)

    async def post(self, endpoint: str, data: dict[str, Any] | None = None, auth: bool = True,
                   ignore: re.Pattern | None = None) -> Any:
        return await self.request("POST", endpoint, data, auth, ignore)

    async def put(self, endpoint: str, data: dict[str, Any] | None = None, auth: bool = True,
                  ignore: re.Pattern | None = None) -> Any:
        return await self.request("PUT", endpoint, data, auth, ignore)

    async def delete(self, endpoint: str, data: dict[str, Any] | None = None, auth: bool = True,
                     ignore: re.Pattern | None = None) -> Any:
        return await self.request("DELETE", endpoint, data, auth, ignore)

    # ---- 用户查询 ----------------------------------------------------------

    async def users(self, fields: dict[str, int] | None = None, online: bool = False) -> list[dict[str, Any]]:
        """查询用户列表。online=True 时只返回非离线用户。"""
        query: dict[str, Any] = {"fields": fields or USER_FIELDS}
        if online:
            query["query"] = {"status": {"$ne": "offline"}}
        result = await self.get("users.list", query)
        return result.get("users", []) if isinstance(result, dict) else []

    async def user_names(self, online: bool = False) -> list[str]:
        return [u.get("username", "") for u in await self.users({"username": 1}, online=online)]

    async def user_ids(self, online: bool = False) -> list[str]:
        return [u.get("_id", "") for u in await self.users({"_id": 1}, online=online)]


def _query_params(data: dict[str, Any] | None) -> dict[str, Any]:
    """GET 参数中的嵌套对象按服务器约定编码为 JSON 字符串。"""
    params: dict[str, Any] = {}
    for key, value in (data or {}).items():
        params[key] = json.dumps(value) if isinstance(value, (dict, list)) else value
    return params


def _json_or_text(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return response.text
