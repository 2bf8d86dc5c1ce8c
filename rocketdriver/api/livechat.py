"""
Livechat REST 接口模块 - 访客侧 Livechat 会话的 HTTP 辅助方法。

Livechat 接口面向网站访客，绝大多数请求不需要 X-Auth-Token 认证，
而是以访客 token（以及房间 rid）标识会话。只有 visitor/agent 查询沿用客户端登录。

通过 RestClient.livechat 使用：
    config = await client.livechat.config({"token": visitor_token})
    await client.livechat.send_message({"token": visitor_token, "rid": rid, "msg": "hi"})
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from rocketdriver.api.rest import RestClient


class LivechatApi:
    """
    Livechat 接口辅助方法集合。

    credentials 参数统一为包含 token、rid（部分接口还有 department）的字典。
    """

    def __init__(self, client: "RestClient"):
        self._client = client

    async def config(self, params: dict[str, Any] | None = None) -> Any:
        return await self._client.get("livechat/config", params, auth=False)

    async def room(self, credentials: dict[str, Any]) -> Any:
        return await self._client.get("livechat/room", credentials, auth=False)

    async def close_chat(self, credentials: dict[str, Any]) -> Any:
        data = {"rid": credentials.get("rid"), "token": credentials.get("token")}
        return await self._client.post("livechat/room.close", data, auth=False)

    async def transfer_chat(self, credentials: dict[str, Any]) -> Any:
        data = {
            "rid": credentials.get("rid"),
            "token": credentials.get("token"),
            "department": credentials.get("department"),
        }
        return await self._client.post("livechat/room.transfer", data, auth=False)

    async def chat_survey(self, survey: dict[str, Any]) -> Any:
        data = {"rid": survey.get("rid"), "token": survey.get("token"), "data": survey.get("data")}
        return await self._client.post("livechat/room.survey", data, auth=False)

    async def visitor(self, token: str) -> Any:
        return await self._client.get(f"livechat/visitor/{token}")

    async def grant_visitor(self, guest: dict[str, Any]) -> Any:
        """注册（或更新）访客，guest 形如 {"visitor": {"name": ..., "token": ...}}。"""
        return await self._client.post("livechat/visitor", guest, auth=False)

    async def agent(self, credentials: dict[str, Any]) -> Any:
        return await self._client.get(f"livechat/agent.info/{credentials.get('rid')}/{credentials.get('token')}")

    async def next_agent(self, credentials: dict[str, Any]) -> Any:
        return await self._client.get(
            f"livechat/agent.next/{credentials.get('token')}",
            {"department": credentials.get("department")},
        )

    # ---- 消息 ------------------------------------------------------------

    async def send_message(self, message: dict[str, Any]) -> Any:
        return await self._client.post("livechat/message", message, auth=False)

    async def edit_message(self, message_id: str, message: dict[str, Any]) -> Any:
        return await self._client.put(f"livechat/message/{message_id}", message, auth=False)

    async def delete_message(self, message_id: str, credentials: dict[str, Any]) -> Any:
        return await self._client.delete(f"livechat/message/{message_id}", credentials, auth=False)

    async def load_messages(self, room_id: str, params: dict[str, Any]) -> Any:
        """加载房间历史消息，params 至少包含访客 token。"""
        return await self._client.get(f"livechat/messages.history/{room_id}", params, auth=False)

    async def send_offline_message(self, message: dict[str, Any]) -> Any:
        return await self._client.post("livechat/offline.message", message, auth=False)

    # ---- 会话附加信息 ---------------------------------------------------------

    async def send_visitor_navigation(self, credentials: dict[str, Any], page: dict[str, Any]) -> Any:
        data = {"token": credentials.get("token"), "rid": credentials.get("rid"), **page}
        return await self._client.post("livechat/page.visited", data, auth=False)

    async def request_transcript(self, email: str, credentials: dict[str, Any]) -> Any:
        data = {"token": credentials.get("token"), "rid": credentials.get("rid"), "email": email}
        return await self._client.post("livechat/transcript", data, auth=False)

    async def video_call(self, credentials: dict[str, Any]) -> Any:
        return await self._client.get(
            f"livechat/video.call/{credentials.get('token')}",
            {"rid": credentials.get("rid")},
            auth=False,
        )

    async def send_custom_field(self, field: dict[str, Any]) -> Any:
        return await self._client.post("livechat/custom.field", field, auth=False)

    async def send_custom_fields(self, fields: dict[str, Any]) -> Any:
        return await self._client.post("livechat/custom.fields", fields, auth=False)
