"""
Shared utilities for CLI commands.

Provides common functionality used across multiple CLI commands to
eliminate duplication and ensure consistent behavior.
"""

import json
import logging
import sys
from typing import Any, Dict, List, Optional

from swiftvm.core.download import DownloadProgress
from swiftvm.core.exceptions import UserAbortedError

logger = logging.getLogger(__name__)


# ============================================================================
# Engine Construction
# ============================================================================


def build_manager(args):
    """
    Build a ToolchainManager from the global command-line options.

    Args:
        args: Parsed arguments with home_dir, bin_dir and toolchains_dir

    Returns:
        ToolchainManager for the current host
    """
    from swiftvm.toolchain.engine import ManagerContext, ToolchainManager

    context = ManagerContext.create(
        home_dir=getattr(args, "home_dir", None),
        bin_dir=getattr(args, "bin_dir", None),
        toolchains_dir=getattr(args, "toolchains_dir", None),
    )
    logger.debug(f"Using swiftvm home {context.paths.home_dir}")
    return ToolchainManager(context)


# ============================================================================
# User Interaction
# ============================================================================


def confirm(prompt: str, assume_yes: bool = False, default: bool = True) -> bool:
    """
    Ask a yes/no question on the terminal.

    Args:
        prompt: Question to ask
        assume_yes: Answer yes without asking
        default: Answer used for an empty response

    Returns:
        True when the user agreed

    Raises:
        UserAbortedError: If the user declines or input is closed
    """
    if assume_yes:
        return True

    choices = "[Y/n]" if default else "[y/N]"
    try:
        response = input(f"{prompt} {choices} ").strip().lower()
    except EOFError:
        print()
        raise UserAbortedError("Aborted: no answer given") from None

    if not response:
        agreed = default
    else:
        agreed = response in ("y", "yes")

    if not agreed:
        raise UserAbortedError("Aborted by user")
    return True


class ProgressPrinter:
    """Download progress callback that redraws one line on a terminal."""

    def __init__(self, stream=None, min_step: float = 0.5):
        self.stream = stream or sys.stderr
        self.min_step = min_step
        self._last_percentage = -1.0

    @property
    def enabled(self) -> bool:
        return hasattr(self.stream, "isatty") and self.stream.isatty()

    def __call__(self, progress: DownloadProgress) -> None:
        if not self.enabled:
            return
        # Redraw only when progress moved by min_step percent
        if progress.percentage - self._last_percentage < self.min_step and (
            progress.percentage < 100.0
        ):
            return
        self._last_percentage = progress.percentage
        self.stream.write(f"\r{progress}\033[K")
        if progress.total_bytes and progress.bytes_downloaded >= progress.total_bytes:
            self.stream.write("\n")
        self.stream.flush()


# ============================================================================
# Output Formatting
# ============================================================================


def format_listings(listings: List[Any], output_format: str = "text") -> str:
    """
    Format toolchain listings for stdout.

    Args:
        listings: ToolchainListing rows
        output_format: 'text' or 'json'

    Returns:
        Formatted output (no trailing newline)
    """
    if output_format == "json":
        return json.dumps(
            {"toolchains": [listing.to_dict() for listing in listings]}, indent=2
        )

    stable = [row for row in listings if row.version.is_stable()]
    snapshots = [row for row in listings if not row.version.is_stable()]

    lines = []
    for title, rows in (("Stable releases", stable), ("Snapshots", snapshots)):
        if not rows:
            continue
        if lines:
            lines.append("")
        lines.append(f"{title}:")
        for row in rows:
            markers = []
            if row.in_use:
                markers.append("in use")
            elif row.installed:
                markers.append("installed")
            suffix = f" ({', '.join(markers)})" if markers else ""
            lines.append(f"  {row.version.name}{suffix}")
    return "\n".join(lines)


def format_success_message(
    title: str,
    details: Dict[str, Any],
    next_steps: Optional[list] = None,
    width: int = 70,
) -> str:
    """
    Format a standardized success message.

    Args:
        title: Success message title
        details: Key-value pairs to display
        next_steps: Optional list of next step instructions
        width: Width of message box

    Returns:
        Formatted message string
    """
    lines = ["=" * width, title, "=" * width, ""]

    for key, value in details.items():
        lines.append(f"{key}: {value}")

    if next_steps:
        lines.append("")
        lines.append("Next steps:")
        for step in next_steps:
            lines.append(f"  {step}")

    lines.append("")
    return "\n".join(lines)


def print_error(message: str, details: Optional[str] = None):
    """
    Print error message to stderr in consistent format.

    Args:
        message: Main error message
        details: Optional hint or additional details
    """
    print(f"ERROR: {message}", file=sys.stderr)
    if details:
        print(f"  {details}", file=sys.stderr)


def print_warning(message: str):
    """Print warning message to stderr."""
    print(f"WARNING: {message}", file=sys.stderr)


def safe_print(message: str, file=None):
    """
    Print message, replacing characters the console encoding can't represent.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        stream = file or sys.stdout
        encoding = getattr(stream, "encoding", None) or "ascii"
        print(message.encode(encoding, errors="replace").decode(encoding), file=file)


__all__ = [
    "ProgressPrinter",
    "build_manager",
    "confirm",
    "format_listings",
    "format_success_message",
    "print_error",
    "print_warning",
    "safe_print",
]
