"""
CLI 命令模块 - rocketdriver 的命令行入口。

使用 Typer 框架定义命令：
- listen：连接、登录并打印通过过滤管道的消息（Ctrl+C 退出）
- send：向房间（或用户私聊）发送一条消息
- status：查看当前配置（密码已遮盖）

技术栈：
- Typer：CLI 框架（基于 Click，支持类型注解自动生成帮助文档）
- Rich：终端美化输出
"""

import asyncio

import typer
from loguru import logger
from rich.console import Console
from rich.table import Table

from rocketdriver import __logo__, __version__

app = typer.Typer(
    name="rocketdriver",
    help=f"{__logo__} rocketdriver - real-time chat driver",
    no_args_is_help=True,
)

console = Console()


def version_callback(value: bool):
    """版本号回调：当用户传入 --version/-v 参数时，打印版本号并退出。"""
    if value:
        console.print(f"{__logo__} rocketdriver v{__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None, "--version", "-v", callback=version_callback, is_eager=True
    ),
):
    """rocketdriver CLI 根命令回调。"""
    pass


def _setup_logging(verbose: bool) -> None:
    if verbose:
        logger.enable("rocketdriver")
    else:
        logger.disable("rocketdriver")


# ============================================================================
# Listen
# ============================================================================


@app.command()
def listen(
    dm: bool = typer.Option(False, "--dm", help="Include direct messages"),
    livechat: bool = typer.Option(False, "--livechat", help="Include livechat messages"),
    edited: bool = typer.Option(False, "--edited", help="Include edited messages"),
    all_public: bool = typer.Option(False, "--all-public", help="Listen to all public rooms"),
    room: list[str] = typer.Option(None, "--room", "-r", help="Room to join (repeatable)"),
    verbose: bool = typer.Option(False, "--verbose", help="Show driver logs"),
):
    """连接并登录，打印所有通过过滤的消息。"""
    from rocketdriver.bus.events import Message, MessageMeta
    from rocketdriver.config.loader import load_config
    from rocketdriver.driver import Driver

    _setup_logging(verbose)
    config = load_config()
    driver = Driver(config)

    def on_message(err: Exception | None, message: Message | None, meta: MessageMeta | None) -> None:
        if err is not None:
            console.print(f"[red]Error:[/red] {err}")
            return
        sender = message.user.username if message.user else "unknown"
        where = meta.room_name or message.room_id
        console.print(f"[cyan]{where}[/cyan] [bold]{sender}[/bold]: {message.text}")

    async def run():
        try:
            await driver.connect()
            user_id = await driver.login()
            console.print(f"[green]✓[/green] Logged in as {config.username} ({user_id})")
            await driver.respond_to_messages(
                on_message, dm=dm, livechat=livechat, edited=edited,
                all_public=all_public, rooms=room or None,
            )
            console.print("Listening for messages, press Ctrl+C to stop")
            while driver.connection.connected:
                await asyncio.sleep(1)
        finally:
            await driver.disconnect()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\nShutting down...")


# ============================================================================
# Send
# ============================================================================


@app.command()
def send(
    target: str = typer.Argument(..., help="Room name/ID, or username with --direct"),
    text: str = typer.Argument(..., help="Message text"),
    direct: bool = typer.Option(False, "--direct", "-d", help="Send as direct message to a user"),
    verbose: bool = typer.Option(False, "--verbose", help="Show driver logs"),
):
    """发送一条消息。"""
    from rocketdriver.config.loader import load_config
    from rocketdriver.driver import Driver
    from rocketdriver.errors import DriverError

    _setup_logging(verbose)
    driver = Driver(load_config())

    async def run():
        try:
            await driver.login()
            if direct:
                receipt = await driver.send_direct_to_user(text, target)
            else:
                receipt = await driver.send_to_room(text, target)
            return receipt
        finally:
            await driver.disconnect()

    try:
        receipt = asyncio.run(run())
    except DriverError as e:
        console.print(f"[red]✗[/red] {e}")
        raise typer.Exit(1)
    message_id = receipt.get("_id", "") if isinstance(receipt, dict) else ""
    console.print(f"[green]✓[/green] Sent {message_id}")


# ============================================================================
# Status
# ============================================================================


@app.command()
def status():
    """显示配置文件路径和当前生效的配置。"""
    from rocketdriver.config.loader import get_config_path, load_config

    config_path = get_config_path()
    config = load_config()

    console.print(f"{__logo__} rocketdriver Status\n")
    console.print(f"Config: {config_path} {'[green]✓[/green]' if config_path.exists() else '[dim]defaults[/dim]'}")

    table = Table(title="Configuration")
    table.add_column("Option", style="cyan")
    table.add_column("Value")
    for key, value in config.safe_dump().items():
        table.add_row(key, str(value))
    console.print(table)


if __name__ == "__main__":
    app()
