"""
Utilities Module

File helpers shared by the cipher and digest modules (whole-file reads,
atomic writes) and console helpers used by the command line.
"""

import os
import sys
import platform
import tempfile
from typing import Any, Dict, List, Tuple

import Crypto
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text


def read_file_bytes(file_path: str) -> bytearray:
    """
    Read a whole file into memory.

    Args:
        file_path: Path to file

    Returns:
        File contents as a bytearray (so callers can wipe it)

    Raises:
        OSError: If the file cannot be opened or read
    """
    with open(file_path, 'rb') as f:
        return bytearray(f.read())


def write_file_atomic(file_path: str, *chunks) -> int:
    """
    Write chunks to a file so that it is either complete or absent.

    Data goes to a temporary file in the destination directory, which is
    renamed over the destination only after every chunk was written and
    flushed. On failure the temporary file is removed and the exception
    propagates.

    Args:
        file_path: Destination path
        *chunks: Bytes-like objects written in order

    Returns:
        Number of bytes written
    """
    directory = os.path.dirname(os.path.abspath(file_path))
    os.makedirs(directory, exist_ok=True)

    fd, temp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(file_path)}.", suffix=".tmp", dir=directory
    )
    written = 0
    try:
        with os.fdopen(fd, 'wb') as f:
            for chunk in chunks:
                f.write(chunk)
                written += len(chunk)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, file_path)
    except BaseException:
        try:
            os.remove(temp_path)
        except FileNotFoundError:
            pass
        raise

    return written


def format_file_size(size_bytes: int) -> str:
    """Render a byte count as e.g. '1.5 KB'."""
    size = float(size_bytes)
    for unit in ("B", "KB", "MB", "GB", "TB"):
        if size < 1024.0 or unit == "TB":
            break
        size /= 1024.0

    if unit == "B":
        return f"{int(size)} B"
    return f"{size:.1f} {unit}"


def validate_file_path(file_path: str, must_exist: bool = True) -> bool:
    """
    Check that a path can be used as an input or output file.

    Inputs must be existing regular files. Outputs must not name a
    directory, and their parent directory must exist.
    """
    if not file_path:
        return False

    if must_exist:
        return os.path.isfile(file_path)

    if os.path.isdir(file_path):
        return False
    return os.path.isdir(os.path.dirname(os.path.abspath(file_path)))


def get_system_info() -> Dict[str, Any]:
    """Get platform details shown by the info command."""
    return {
        'platform': platform.platform(),
        'machine': platform.machine(),
        'python_version': platform.python_version(),
        'python_implementation': platform.python_implementation(),
        'pycryptodome_version': Crypto.__version__,
    }


def flatten_dict(data: Dict[str, Any], prefix: str = "") -> List[Tuple[str, Any]]:
    """Turn nested mappings into (dotted.key, value) pairs."""
    items = []
    for key, value in data.items():
        full_key = f"{prefix}.{key}" if prefix else key
        if isinstance(value, dict):
            items.extend(flatten_dict(value, full_key))
        else:
            items.append((full_key, value))
    return items


# kind -> (plain prefix, rich style, stream is stderr)
_MESSAGE_STYLES = {
    'error': ("Error:", "red", True),
    'warning': ("Warning:", "yellow", True),
    'success': ("OK:", "green", False),
}


def _report(kind: str, message: str, use_rich: bool) -> None:
    prefix, style, to_stderr = _MESSAGE_STYLES[kind]

    if use_rich:
        console = Console(stderr=to_stderr)
        console.print(Panel(Text(message, style=style), title=kind.capitalize(), border_style=style))
    else:
        print(f"{prefix} {message}", file=sys.stderr if to_stderr else sys.stdout)


def print_error(message: str, use_rich: bool = True) -> None:
    """Report an error on stderr."""
    _report('error', message, use_rich)


def print_success(message: str, use_rich: bool = True) -> None:
    """Report a completed operation on stdout."""
    _report('success', message, use_rich)


def print_warning(message: str, use_rich: bool = True) -> None:
    """Report a recoverable problem on stderr."""
    _report('warning', message, use_rich)


def print_table(title: str, rows: List[Tuple[str, Any]], use_rich: bool = True) -> None:
    """
    Print two-column (name, value) rows.

    Args:
        title: Table title
        rows: (name, value) pairs
        use_rich: Render a rich table instead of aligned plain text
    """
    if use_rich:
        table = Table(title=title, show_header=False)
        table.add_column(style="bold cyan")
        table.add_column()
        for name, value in rows:
            table.add_row(str(name), str(value))
        Console().print(table)
        return

    width = max((len(str(name)) for name, _ in rows), default=0)
    print(title)
    for name, value in rows:
        print(f"  {str(name).ljust(width)}  {value}")
