import os
import re
import shutil
import subprocess
from typing import List, Optional
from jinja2 import Environment, FileSystemLoader

from .constants import TEMPLATE_DIR
from .exceptions import RuntimeCommandError
from .log import get_logger


logger = get_logger(__name__)


def format_duration(seconds: float) -> str:
    seconds = int(round(seconds))
    if seconds < 60:
        return f"{seconds}s"
    elif seconds < 3600:
        return f"{seconds // 60}m {seconds % 60}s"
    else:
        return f"{seconds // 3600}h {seconds % 3600 // 60}m"

def split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item.strip() for item in value.split(",") if item.strip()]

def sanitize_filename(filename: str) -> str:
    # Define a regular expression pattern to match invalid filename characters
    invalid_pattern = r'[<>:"/\\|?*\[\]]'
    filename = re.sub(invalid_pattern, '', filename)
    filename = re.sub(r'-+', '-', filename)
    filename = filename.replace(" ", "_")
    filename = filename.strip('-')
    if not filename:
        filename = 'default-filename'
    # Limit the filename length to 255 characters (common limit for most filesystems)
    if len(filename) > 255:
        filename = filename[:255]
    return filename

def limit_string_length(
    s: str,
    max_length: int = 3000,
    suffix: str = '...'
) -> str:
    if len(suffix) >= max_length:
        return suffix
    if len(s) > max_length:
        half_length = (max_length - len(suffix)) // 2
        return s[:half_length] + suffix + s[-half_length:]
    else:
        return s

def render_jinja_template(template_path: str, **kwargs) -> str:
    if not os.path.isabs(template_path):
        template_path = os.path.join(TEMPLATE_DIR, template_path)
    file_loader = FileSystemLoader(os.path.dirname(template_path))
    env = Environment(
        loader=file_loader,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True
    )
    env.filters["duration"] = format_duration
    template = env.get_template(os.path.basename(template_path))
    return template.render(**kwargs)

#---------------
# host commands
#---------------
def has_command(name: str) -> bool:
    return shutil.which(name) is not None

def run_cmd(
    args: List[str],
    timeout: float = 30.0,
    input: Optional[str] = None,
    check: bool = False
) -> subprocess.CompletedProcess:
    """
    Run an external command and capture its output as text.

    Args:
        args: Command and arguments (no shell)
        timeout: Seconds to wait before the command is killed
        input: Optional text written to the command's stdin
        check: Raise RuntimeCommandError on a non-zero exit code

    Returns:
        The completed process. A missing binary or a timeout is reported as
        returncode 127 / 124 respectively rather than raised, unless ``check``.
    """
    logger.debug(f"$ {' '.join(args)}")
    try:
        res = subprocess.run(
            args,
            input=input,
            capture_output=True,
            text=True,
            timeout=timeout
        )
    except FileNotFoundError as e:
        res = subprocess.CompletedProcess(args, 127, "", str(e))
    except subprocess.TimeoutExpired:
        res = subprocess.CompletedProcess(args, 124, "", f"timed out after {timeout}s")
    if res.returncode != 0:
        logger.debug(f"exit {res.returncode}: {limit_string_length(res.stderr.strip(), max_length=500)}")
        if check:
            raise RuntimeCommandError(
                f"{' '.join(args)} failed (exit {res.returncode}): {res.stderr.strip()}"
            )
    return res
