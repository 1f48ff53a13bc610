"""Terminal output helpers for the wave CLI."""


class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    DIM = '\033[2m'


def format_context(**context: object) -> str:
    """Render a ``[key=value ...]`` log prefix, skipping empty values.

    Example:
        >>> format_context(alias="crm", db="CRMDB", schema=None)
        '[alias=crm db=CRMDB]'
    """
    parts = [f"{key}={value}" for key, value in context.items() if value not in (None, "")]
    return f"[{' '.join(parts)}]" if parts else ""


def print_header(msg: str) -> None:
    """Print a header message."""
    print(f"{Colors.HEADER}{Colors.BOLD}{msg}{Colors.ENDC}")


def print_info(msg: str) -> None:
    """Print an info message."""
    print(f"{Colors.CYAN}{msg}{Colors.ENDC}")


def print_success(msg: str) -> None:
    """Print a success message."""
    print(f"{Colors.GREEN}✓ {msg}{Colors.ENDC}")


def print_dry_run(msg: str) -> None:
    """Print a message describing a write that a dry run skipped."""
    print(f"{Colors.DIM}⊘ DRY-RUN: {msg}{Colors.ENDC}")


def print_warning(msg: str) -> None:
    """Print a warning message."""
    print(f"{Colors.YELLOW}⚠️  {msg}{Colors.ENDC}")


def print_error(msg: str) -> None:
    """Print an error message."""
    print(f"{Colors.RED}❌ {msg}{Colors.ENDC}")
