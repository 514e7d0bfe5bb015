"""
Main entry point — parse args, load config, build the agent, run one prompt.

Human-in-the-loop pauses are answered interactively on stdin.
"""

from __future__ import annotations
import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .config.settings import load_config
from .core.create_agent import create_agent_from_config
from .core.models import HumanInputRequestedEvent, is_pending_result
from .core.providers import ProviderFactory
from .tools.request_human_input import RequestHumanInputTool

logger = logging.getLogger(__name__)


def setup_logging(level: str = "WARNING") -> None:
    """Configure logging based on verbosity."""
    numeric = getattr(logging, level.upper(), logging.WARNING)
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="factor-agent",
        description="Run an agent loop on a single prompt",
    )
    parser.add_argument("prompt", help="Task for the agent")
    parser.add_argument(
        "-c", "--config",
        help="Path to config YAML file",
        default=None,
    )
    parser.add_argument(
        "-p", "--provider",
        help=f"LLM provider ({', '.join(ProviderFactory.available())})",
        default=None,
    )
    parser.add_argument(
        "-m", "--model",
        help="Model name to use",
        default=None,
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v for INFO, -vv for DEBUG)",
    )
    parser.add_argument(
        "--xml",
        action="store_true",
        help="Send the thread to the model as a single XML document",
    )
    parser.add_argument(
        "--dump-thread",
        action="store_true",
        help="Print the final thread as JSON",
    )
    return parser.parse_args(argv)


def _last_question(result) -> str:
    for event in reversed(result.thread.events):
        if isinstance(event, HumanInputRequestedEvent):
            text = event.question
            if event.choices:
                text += f" [{' / '.join(event.choices)}]"
            return text
    return result.stop_detail or "Input needed"


async def run_prompt(agent, prompt: str, ask=input):
    """Run the loop, answering every pause with `ask(question)`."""
    result = await agent.loop(prompt)
    while is_pending_result(result):
        answer = ask(f"\n? {_last_question(result)}\n> ")
        result = await result.resume(answer)
    return result


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)

    config = load_config(args.config)

    # Logging level
    if args.verbose >= 2:
        log_level = "DEBUG"
    elif args.verbose >= 1:
        log_level = "INFO"
    else:
        log_level = config.get("logging.level", "WARNING")
    setup_logging(log_level)

    # Override config with CLI args
    if args.provider:
        config.set("llm.provider", args.provider)
    if args.model:
        config.set("llm.model", args.model)
    if args.xml:
        config.set("agent.context_mode", "xml")

    try:
        agent = create_agent_from_config(config, tools=[RequestHumanInputTool()])
    except Exception as e:
        print(f"Error creating agent: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        result = asyncio.run(run_prompt(agent, args.prompt))
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        sys.exit(130)

    print(result.response)
    logger.info(
        f"Finished: {result.stop_reason} after {result.iterations} iteration(s), "
        f"{result.usage.total_tokens} tokens"
    )
    if args.dump_thread:
        print(json.dumps(result.thread.to_dict(), indent=2, default=str))
    if result.stop_reason != "completed":
        print(f"[{result.stop_reason}] {result.stop_detail or ''}".rstrip(), file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
