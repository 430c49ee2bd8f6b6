#!/usr/bin/env python3
"""
react-agent Interactive CLI

A command-line interface for running tasks through the ReAct loop.
Ctrl+C during a run cancels it at the next step boundary; a second
Ctrl+C forces exit.
"""

import argparse
import atexit
import json
import logging
import signal
import sys
import threading
import uuid
from dataclasses import replace
from typing import Optional

from .config import config
from .models import Exhausted, FinalAnswer, RunResult
from .orchestration import CancellationToken, Orchestrator
from .orchestrator import build_orchestrator, format_trace, get_trace
from .tracing import TracingContext, init_tracing_client, shutdown_tracing

# Global shutdown flag for signal handling
_shutdown_requested = threading.Event()
_current_token: Optional[CancellationToken] = None
_active_orchestrators: list[Orchestrator] = []

logger = logging.getLogger(__name__)


def _signal_handler(signum: int, frame) -> None:
    """Cancel the running task on SIGINT; force exit on the second one."""
    token = _current_token
    if _shutdown_requested.is_set():
        logger.debug("Force shutdown requested")
        _cleanup()
        sys.exit(1)
    if token is not None and not token.cancelled:
        logger.debug("Cancellation requested")
        token.cancel("Interrupted by user")
        print("\n\nCancelling... (press Ctrl+C again to force quit)")
        return
    _shutdown_requested.set()
    raise KeyboardInterrupt


def _cleanup() -> None:
    """Close all tracked orchestrators and flush tracing."""
    for orchestrator in _active_orchestrators:
        try:
            orchestrator.close()
        except Exception as e:
            logger.debug("Error closing orchestrator: %s", e)
    _active_orchestrators.clear()
    shutdown_tracing()


atexit.register(_cleanup)


def setup_logging(verbose: bool = False) -> None:
    """Configure logging based on verbosity level."""
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stderr)],
    )


def print_banner() -> None:
    """Print the welcome banner."""
    banner = """
╔════════════════════════════════════════════════════════════════╗
║                     react-agent Interactive                     ║
║                                                                 ║
║  ReAct reasoning loop with tool calling                         ║
╚════════════════════════════════════════════════════════════════╝

Available commands:
  /help     - Show this help message
  /trace    - Show the trace of the last task
  /tools    - List available tools
  /verbose  - Toggle verbose mode
  /quit     - Exit the CLI

Type your questions or tasks below. Ctrl+C cancels a running task.
"""
    print(banner)


def print_tools(orchestrator: Orchestrator) -> None:
    """Print the tools offered to the model."""
    print("\nAvailable Tools:")
    print("─" * 64)
    for i, definition in enumerate(orchestrator.tool_definitions, start=1):
        function = definition["function"]
        print(f"{i}. {function['name'].ljust(14)} - {function['description']}")
    print()


def render_result(result: RunResult) -> str:
    """Human-readable outcome of a run."""
    if isinstance(result, FinalAnswer):
        return result.content
    if isinstance(result, Exhausted):
        return (
            f"[exhausted: {result.reason.value} after {result.steps} step(s)] "
            "No final answer was produced."
        )
    return f"[error: {result.kind.value}] {result.detail}"


def execute(
    orchestrator: Orchestrator,
    task: str,
    system_instruction: Optional[str] = None,
    max_steps: Optional[int] = None,
) -> RunResult:
    """Run one task with a fresh cancellation token and root trace."""
    global _current_token
    execution_id = f"cli-{uuid.uuid4().hex[:8]}"
    tracing_context = TracingContext(execution_id=execution_id)
    tracing_context.start_trace(name="cli_run", task=task)

    _current_token = CancellationToken()
    try:
        result = orchestrator.run(
            task,
            system_instruction=system_instruction,
            max_steps=max_steps,
            cancel_token=_current_token,
            execution_id=execution_id,
            tracing_context=tracing_context,
        )
    finally:
        _current_token = None

    tracing_context.end_trace(
        output=result.to_dict(include_conversation=False),
        status="success" if result.status == "answer" else result.status,
    )
    return result


class InteractiveCLI:
    """Interactive CLI for react-agent."""

    def __init__(
        self,
        orchestrator: Orchestrator,
        verbose: bool = False,
        system_instruction: Optional[str] = None,
        max_steps: Optional[int] = None,
    ):
        self.orchestrator = orchestrator
        self.verbose = verbose
        self.system_instruction = system_instruction
        self.max_steps = max_steps
        self.last_result: Optional[RunResult] = None

    def toggle_verbose(self) -> None:
        """Toggle verbose mode."""
        self.verbose = not self.verbose
        logging.getLogger("react_agent").setLevel(
            logging.DEBUG if self.verbose else logging.INFO
        )
        print(f"\nVerbose mode: {'ON' if self.verbose else 'OFF'}\n")

    def show_trace(self) -> None:
        conversation = self.last_result.conversation if self.last_result else None
        print("\n" + format_trace(conversation) + "\n")

    def process_task(self, task: str) -> None:
        """Run a task and print the outcome."""
        print("\n" + "─" * 70)
        print("Processing task...")
        print("─" * 70 + "\n")

        result = execute(
            self.orchestrator,
            task,
            system_instruction=self.system_instruction,
            max_steps=self.max_steps,
        )
        self.last_result = result

        print("\n" + "═" * 70)
        print("ANSWER" if isinstance(result, FinalAnswer) else result.status.upper())
        print("═" * 70)
        print(render_result(result))
        print("═" * 70 + "\n")

        print(f"(Completed in {result.steps} step{'s' if result.steps != 1 else ''})")
        print("Use /trace to see the full reasoning trace.\n")

    def handle_command(self, user_input: str) -> bool:
        """Handle a slash command. Returns False when the CLI should exit."""
        command = user_input.lower()
        if command in ("/quit", "/exit", "/q"):
            print("\nGoodbye!\n")
            return False
        if command in ("/help", "/h", "/?"):
            print_banner()
        elif command == "/trace":
            self.show_trace()
        elif command == "/tools":
            print_tools(self.orchestrator)
        elif command == "/verbose":
            self.toggle_verbose()
        else:
            print(f"\nUnknown command: {user_input}")
            print("Type /help for available commands.\n")
        return True

    def run(self) -> None:
        """Run the interactive CLI loop."""
        print_banner()

        while not _shutdown_requested.is_set():
            try:
                user_input = input(">>> ").strip()
                if not user_input:
                    continue
                if user_input.startswith("/"):
                    if not self.handle_command(user_input):
                        break
                else:
                    self.process_task(user_input)
            except KeyboardInterrupt:
                print("\n\nGoodbye!\n")
                break
            except EOFError:
                print("\nGoodbye!\n")
                break


def main() -> None:
    """Main entry point."""
    signal.signal(signal.SIGINT, _signal_handler)

    parser = argparse.ArgumentParser(
        description="react-agent Interactive CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                        # Start interactive mode
  %(prog)s -v                     # Start with verbose logging
  %(prog)s -t "What is 2+2?"      # Run a single task
  %(prog)s -t "..." --json        # Single task, JSON result with trace

Use /tools in interactive mode to see available tools.
""",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-t",
        "--task",
        type=str,
        help="Run a single task and exit",
    )
    parser.add_argument(
        "-s",
        "--system",
        type=str,
        default=None,
        help="System instruction for the run(s)",
    )
    parser.add_argument(
        "--max-steps",
        type=int,
        default=None,
        help=f"Step budget per run (default: {config.agent.max_steps})",
    )
    parser.add_argument(
        "--model-url",
        type=str,
        default=None,
        help=f"Model endpoint URL (default: from MODEL_BASE_URL env or {config.model.base_url})",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output results as JSON (for scripting)",
    )

    args = parser.parse_args()
    setup_logging(args.verbose)

    app_config = config
    if args.model_url:
        app_config = replace(config, model=replace(config.model, base_url=args.model_url))

    init_tracing_client(
        public_key=app_config.langfuse.public_key,
        secret_key=app_config.langfuse.secret_key,
        host=app_config.langfuse.host,
        debug=app_config.langfuse.debug,
    )
    orchestrator = build_orchestrator(app_config)
    _active_orchestrators.append(orchestrator)

    try:
        if args.task:
            result = execute(orchestrator, args.task, args.system, args.max_steps)
            if args.json:
                output = {
                    "task": args.task,
                    **result.to_dict(include_conversation=False),
                    "trace": get_trace(result.conversation),
                }
                print(json.dumps(output, indent=2))
            else:
                print(render_result(result))
            if not isinstance(result, FinalAnswer):
                sys.exit(1)
        else:
            InteractiveCLI(
                orchestrator,
                verbose=args.verbose,
                system_instruction=args.system,
                max_steps=args.max_steps,
            ).run()
    finally:
        _cleanup()


if __name__ == "__main__":
    main()
