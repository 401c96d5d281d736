"""
Console runner for the live voice session engine.
"""

import asyncio
import argparse
from pathlib import Path

try:
    from .session_controller import SessionController
    from .config import get_framework_config, print_config_summary
    from .models.data_models import SessionState
    from .utils.logging_config import setup_logging
except ImportError:
    from live_assistant.session_controller import SessionController
    from live_assistant.config import get_framework_config, print_config_summary
    from live_assistant.models.data_models import SessionState
    from live_assistant.utils.logging_config import setup_logging


HELP_TEXT = """Commands:
  /toggle          connect or disconnect
  /prompt <label>  send a quick prompt
  /prompts         list quick prompts
  /status          show session status
  /quit            stop and exit
Anything else is sent as typed text."""


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser."""
    parser = argparse.ArgumentParser(
        description="Live voice assistant",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    run = subparsers.add_parser(
        'run',
        help='Start an interactive voice session'
    )
    run.add_argument('--no-connect', action='store_true', help='Wait for /toggle before connecting')

    subparsers.add_parser(
        'config',
        help='Show configuration'
    )

    return parser


class StatusPrinter:
    """Prints status and activity changes as they happen."""

    def __init__(self):
        self._last = None
        self._printed_entries = 0

    def __call__(self, state: SessionState) -> None:
        snapshot = (
            state.status,
            state.user_speaking,
            state.assistant_speaking,
            state.tool_processing,
            state.last_booking,
            state.error_message
        )
        if snapshot != self._last:
            self._last = snapshot
            flags = []
            if state.user_speaking:
                flags.append("🎤 user")
            if state.assistant_speaking:
                flags.append("🔊 assistant")
            if state.tool_processing:
                flags.append("🔧 tool")
            line = f"[{state.status.value}] {' '.join(flags)}"
            if state.error_message:
                line += f"  ❌ {state.error_message}"
            print(line)
            if state.last_booking:
                booking = state.last_booking
                print(f"📅 Booked: {booking.name} on {booking.date} at {booking.time}")

        for entry in state.transcript[self._printed_entries:]:
            print(f"  {entry.role.value:>9}: {entry.text}")
        self._printed_entries = len(state.transcript)


async def cmd_run(controller: SessionController, connect: bool = True):
    """Interactive session loop."""
    print("\n" + "="*60)
    print("Live Session")
    print("="*60)
    print(HELP_TEXT + "\n")

    loop = asyncio.get_running_loop()
    if connect:
        await controller.start()

    while True:
        line = await loop.run_in_executor(None, input, "")
        line = line.strip()
        if not line:
            continue

        if line == '/quit':
            break
        elif line == '/toggle':
            await controller.toggle()
        elif line == '/prompts':
            for label in controller.quick_prompts:
                print(f"  {label}")
        elif line.startswith('/prompt '):
            await controller.send_quick_prompt(line[len('/prompt '):].strip())
        elif line == '/status':
            for key, value in controller.get_status().items():
                print(f"  {key}: {value}")
        elif line.startswith('/'):
            print(HELP_TEXT)
        elif not await controller.send_text(line):
            print("⚠️  Not connected; use /toggle to connect")


def cmd_config():
    """Show configuration."""
    print_config_summary()


async def async_main():
    """Async main function."""
    parser = create_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return

    if args.command == 'config':
        cmd_config()
        return

    print("📝 Loading configuration...")
    config = get_framework_config()
    controller = SessionController.from_config(config)
    controller.add_listener(StatusPrinter())

    try:
        if args.command == 'run':
            await cmd_run(controller, connect=not args.no_connect)
        else:
            print(f"Unknown command: {args.command}")
            parser.print_help()
    finally:
        await controller.stop()


def main():
    """Synchronous entry point."""
    config = get_framework_config()
    try:
        setup_logging(
            level=config.logging.level,
            log_file=Path(config.logging.log_file) if config.logging.log_file else None,
            use_colors=config.logging.use_colors,
            use_emojis=config.logging.use_emojis
        )
    except Exception as e:
        print(f"⚠️  Failed to setup logging: {e}")

    try:
        asyncio.run(async_main())
    except KeyboardInterrupt:
        print("\n⚠️  Interrupted by user")
    except Exception as e:
        print(f"\n❌ Fatal error: {e}")
        import traceback
        traceback.print_exc()


if __name__ == '__main__':
    main()
