"""Request context and profiling enablement.

The request context is collected once, up front, into an immutable value
instead of being read piecemeal from process-global state while profiling.
"""

import json
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from beartype import beartype
from loguru import logger


@dataclass(frozen=True)
class RequestContext:
    """Immutable description of the execution being profiled.

    Attributes:
        url: Requested URL
        client_ip: Client address (forwarded-for header preferred)
        entry_script: Absolute path of the executing entry script
        pid: Process id of the execution
        themed_render: Host is rendering a themed page
        background_job: Host is running a scheduled background job
        admin_context: Host is serving an admin page
    """

    url: str
    client_ip: str
    entry_script: str
    pid: int = field(default_factory=os.getpid)
    themed_render: bool = False
    background_job: bool = False
    admin_context: bool = False

    @classmethod
    @beartype
    def from_environ(
        cls,
        environ: Mapping[str, str],
        entry_script: str | None = None,
        themed_render: bool = False,
        background_job: bool = False,
        admin_context: bool = False,
    ) -> "RequestContext":
        """Build a context from a WSGI/CGI-style environ mapping.

        Args:
            environ: Request variables (HTTP_HOST, REQUEST_URI, REMOTE_ADDR, ...)
            entry_script: Entry script path; defaults to SCRIPT_FILENAME
            themed_render: See class attributes
            background_job: See class attributes
            admin_context: See class attributes
        """
        if entry_script is None:
            entry_script = environ.get("SCRIPT_FILENAME", "")
        return cls(
            url=request_url(environ),
            client_ip=client_ip(environ),
            entry_script=entry_script,
            themed_render=themed_render,
            background_job=background_job,
            admin_context=admin_context,
        )


def client_ip(environ: Mapping[str, str]) -> str:
    """Client address, preferring the X-Forwarded-For header when present."""
    address = environ.get("HTTP_X_FORWARDED_FOR") or environ.get("REMOTE_ADDR", "")
    return re.sub(r"<[^>]*>", "", address).strip()


def request_url(environ: Mapping[str, str]) -> str:
    https = environ.get("HTTPS", "")
    secure = https.lower() == "on" or environ.get("SERVER_PORT") == "443"
    scheme = "https://" if secure else "http://"
    host = environ.get("HTTP_HOST", "")

    if environ.get("REQUEST_URI"):
        return scheme + host + environ["REQUEST_URI"]

    script = environ.get("SCRIPT_NAME", "")
    path = environ.get("PATH_INFO") or environ.get("REDIRECT_URL", "")
    query = environ.get("QUERY_STRING", "")
    return scheme + host + script + path + (f"?{query}" if query else "")


@dataclass(frozen=True)
class Enablement:
    """Contents of the profiling flag file.

    Attributes:
        ip: Pattern searched for (literally) in the client IP; empty matches all
        name: Session name, which also names the profile file
    """

    ip: str
    name: str

    def matches(self, address: str) -> bool:
        return re.search(re.escape(self.ip), address) is not None

    def profile_path(self, profiles_dir: Path) -> Path:
        return profiles_dir / f"{self.name}.json"


@beartype
def load_enablement(flag_file: Path) -> Enablement | None:
    """Read the flag file. Any problem with it means profiling stays disabled."""
    try:
        payload = json.loads(flag_file.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as exc:
        logger.debug(f"Ignoring unreadable profiling flag file {flag_file}: {exc}")
        return None

    if not isinstance(payload, dict):
        logger.debug(f"Ignoring profiling flag file {flag_file}: not a JSON object")
        return None

    ip, name = payload.get("ip"), payload.get("name")
    if not isinstance(ip, str) or not isinstance(name, str) or not name:
        logger.debug(f"Ignoring profiling flag file {flag_file}: 'ip' and 'name' are required")
        return None
    if name in (".", "..") or "/" in name or "\\" in name:
        logger.warning(f"Ignoring profiling flag file {flag_file}: invalid session name {name!r}")
        return None

    return Enablement(ip=ip, name=name)
