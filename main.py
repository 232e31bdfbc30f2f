#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
WhatsAI - WhatsApp 多模型 AI 机器人
"""

import asyncio
import signal
import logging
import sys
from argparse import ArgumentParser

from configuration import Config
from bot import WhatsAIBot, __version__

logger = logging.getLogger("Main")


def setup_logging(level: int = logging.INFO):
    """配置日志"""
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # 降低第三方库日志级别
    for name in ["httpx", "httpcore", "openai", "urllib3"]:
        logging.getLogger(name).setLevel(logging.WARNING)


def apply_log_level(level: int) -> None:
    """Config 加载时会用 dictConfig 重置日志，这里重新应用命令行指定的级别

    只调整 root 与控制台 handler，日志文件的级别保持配置文件中的设置。
    """
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if not isinstance(handler, logging.FileHandler):
            handler.setLevel(level)


def load_config(config_path: str | None, level: int) -> Config:
    try:
        config = Config(config_path)
    except Exception as e:
        logger.error(f"加载配置失败: {e}")
        logger.info("请确保 config.yaml 文件存在且配置正确")
        sys.exit(1)
    apply_log_level(level)
    return config


async def run_whatsapp(config_path: str | None = None, level: int = logging.INFO):
    """WhatsApp 模式"""
    from channel import WhatsAppChannel

    config = load_config(config_path, level)
    wa_conf = config.WHATSAPP
    channel = WhatsAppChannel(
        bridge_url=wa_conf.get("bridge_url", "http://127.0.0.1:3000"),
        token=wa_conf.get("token"),
        poll_timeout=int(wa_conf.get("poll_timeout", 25)),
    )
    bot = WhatsAIBot(channel=channel, config=config)

    loop = asyncio.get_running_loop()

    # 信号处理
    def handle_signal():
        logger.info("收到退出信号，正在清理...")
        asyncio.create_task(bot.stop())

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, handle_signal)
        except NotImplementedError:
            signal.signal(sig, lambda s, f: handle_signal())

    logger.info(f"WhatsAI v{__version__} 启动中...")

    try:
        await bot.start()
    except Exception as e:
        logger.error(f"运行出错: {e}", exc_info=True)
    finally:
        await shutdown(bot, channel)


async def run_local(config_path: str | None = None, level: int = logging.INFO):
    """本地调试模式 - 无需 WhatsApp 环境"""
    from channel import LocalChannel

    config = load_config(config_path, level)
    channel = LocalChannel(bot_name="WhatsAI", user_name="User")
    bot = WhatsAIBot(channel=channel, config=config)

    try:
        await bot.start()
    except Exception as e:
        logger.error(f"运行出错: {e}", exc_info=True)
    finally:
        await shutdown(bot, channel)


async def shutdown(bot: WhatsAIBot, channel):
    """清理资源"""
    await bot.stop()
    bot.cleanup()
    if hasattr(channel, "cleanup"):
        await channel.cleanup()


def main():
    parser = ArgumentParser(description="WhatsAI 聊天机器人")
    parser.add_argument(
        "-d", "--debug", action="store_true", help="调试模式"
    )
    parser.add_argument(
        "-q", "--quiet", action="store_true", help="安静模式"
    )
    parser.add_argument(
        "--local", action="store_true", help="本地调试模式（无需 WhatsApp）"
    )
    parser.add_argument(
        "-c", "--config", default=None, help="配置文件路径（默认为程序目录下的 config.yaml）"
    )
    args = parser.parse_args()

    # 日志级别
    if args.debug:
        level = logging.DEBUG
    elif args.quiet:
        level = logging.ERROR
    else:
        level = logging.INFO

    setup_logging(level)

    try:
        if args.local:
            asyncio.run(run_local(args.config, level))
        else:
            asyncio.run(run_whatsapp(args.config, level))
    except KeyboardInterrupt:
        print("\n再见！")


if __name__ == "__main__":
    main()
