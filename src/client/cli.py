"""命令行运行用例: python -m src.client.cli --test-case-id <id>"""
import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Optional, Sequence
from src.api.models.run import LogEvent, RunEvent, TestStatus
from src.api.models.test_case import TestCaseDefinition
from src.client.api_client import TestBoardClient
from src.client.orchestrator import RunLocation, RunSession, RunState
from src.logger.logger import logger, setup_logger

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="运行浏览器自动化用例并实时输出进度")
    parser.add_argument("--test-case-id", help="已有用例ID(编辑并运行)")
    parser.add_argument("--project-id", help="项目ID(新建用例时必填)")
    parser.add_argument("--name", help="用例名称")
    parser.add_argument("--url", help="起始URL")
    parser.add_argument("--prompt", help="自然语言测试指令")
    parser.add_argument(
        "--definition",
        help="用例定义JSON文件(包含 steps/browserConfig 等字段)，命令行参数会覆盖其中的同名字段",
    )
    parser.add_argument("--base-url", help="服务端API地址，默认读取 CLIENT_API_BASE_URL")
    parser.add_argument("--token", help="访问令牌，默认读取 CLIENT_TOKEN")
    parser.add_argument("--verbose", action="store_true", help="输出调试日志")
    return parser

def _build_definition(args, initial: Optional[TestCaseDefinition]) -> TestCaseDefinition:
    data = initial.model_dump(by_alias=True, exclude_none=True) if initial else {}
    if args.definition:
        data.update(json.loads(Path(args.definition).read_text(encoding="utf-8")))
    for key in ("name", "url", "prompt"):
        value = getattr(args, key)
        if value is not None:
            data[key] = value
    return TestCaseDefinition.model_validate(data)

def _print_event(event: RunEvent) -> None:
    prefix = f"[{event.browser_id}] " if event.browser_id else ""
    if isinstance(event, LogEvent):
        level = {"error": "ERROR", "success": "SUCCESS"}.get(event.data.level.value, "INFO")
        logger.log(level, f"{prefix}{event.data.message}")
    else:
        logger.info(f"{prefix}截图: {event.data.label or event.data.src[:60]}")

async def _run(args) -> int:
    location = RunLocation(project_id=args.project_id, test_case_id=args.test_case_id, name=args.name)
    printed = 0

    def on_update(state: RunState) -> None:
        nonlocal printed
        for event in state.events[printed:]:
            _print_event(event)
        printed = len(state.events)

    async with TestBoardClient(base_url=args.base_url, token=args.token) as client:
        session = RunSession(
            client,
            location=location,
            on_update=on_update,
            on_location_change=lambda loc: logger.info(f"用例已保存: {loc.to_query()}"),
        )
        initial = await session.load()
        if session.project_name:
            logger.info(f"项目: {session.project_name}")

        definition = _build_definition(args, initial)
        if not definition.url and not definition.steps:
            logger.error("缺少 url 或 steps，无法运行")
            return 2

        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, session.cancel)
        except NotImplementedError:
            # Windows 不支持 add_signal_handler
            pass

        state = await session.run(definition)

    if state.error:
        logger.warning(f"运行结束: {state.status.value} - {state.error}")
    else:
        logger.info(f"运行结束: {state.status.value}")
    return 0 if state.status == TestStatus.PASS else 1

def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.verbose:
        setup_logger("DEBUG")
    if not args.test_case_id and not (args.url or args.definition):
        build_parser().error("需要 --test-case-id，或者 --url/--definition")
    return asyncio.run(_run(args))

if __name__ == "__main__":
    sys.exit(main())
