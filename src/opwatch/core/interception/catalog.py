from __future__ import annotations

"""
Watched Operation Catalog.

Declares the platform operations observed by default, grouped by subsystem,
together with the argument summaries recorded for each call. The catalog is
plain data: the InterceptionRegistry decides what gets bound.
"""

import builtins
import http.client
import io
import os
import shutil
import subprocess
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from opwatch.core.interception.registry import ArgsDescriber, WatchedOperation
from opwatch.domain.constants import (
    SUBSYSTEM_FS,
    SUBSYSTEM_HTTP,
    SUBSYSTEM_HTTPS,
    SUBSYSTEM_IMPORT,
    SUBSYSTEM_SUBPROCESS,
)

# os capability registries keyed by function identity
_OS_CAPABILITY_SETS = (
    "supports_fd",
    "supports_dir_fd",
    "supports_follow_symlinks",
    "supports_effective_ids",
)

_HTTPS_CONNECTION = getattr(http.client, "HTTPSConnection", None)


# -----------------------------------------------------------------------------
# PUBLIC API
# -----------------------------------------------------------------------------

def build_operations() -> List[WatchedOperation]:
    """
    Assemble the default instrumentation table.

    Returns:
        List[WatchedOperation]: Every watched operation, all subsystems.
    """
    return [
        *fs_operations(),
        *subprocess_operations(),
        *network_operations(),
        import_operation(),
    ]


def fs_operations() -> List[WatchedOperation]:
    single_path: List[Tuple[Any, str, str, Optional[str]]] = [
        (builtins, "open", "file", None),
        (os, "listdir", "path", "."),
        (os, "scandir", "path", "."),
        (os, "stat", "path", None),
        (os, "lstat", "path", None),
        (os, "mkdir", "path", None),
        (os, "makedirs", "name", None),
        (os, "chmod", "path", None),
        (os, "remove", "path", None),
        (os, "unlink", "path", None),
        (os, "rmdir", "path", None),
        (os.path, "exists", "path", None),
        (os.path, "realpath", "filename", None),
        (shutil, "rmtree", "path", None),
    ]
    pairs: List[Tuple[Any, str, Callable[[str, str], str]]] = [
        (os, "rename", _move_summary),
        (os, "replace", _move_summary),
        (shutil, "move", _move_summary),
        (os, "symlink", _copy_summary),
        (shutil, "copyfile", _copy_summary),
        (shutil, "copy", _copy_summary),
        (shutil, "copy2", _copy_summary),
        (shutil, "copytree", _copy_summary),
    ]

    ops: List[WatchedOperation] = []
    for owner, attr, param, default in single_path:
        ops.append(_fs_operation(owner, attr, _single_path(param, default)))
    for owner, attr, fmt in pairs:
        ops.append(_fs_operation(owner, attr, _path_pair(fmt)))
    # pathlib and direct io.open calls bypass the builtins binding
    ops.append(WatchedOperation(
        subsystem=SUBSYSTEM_FS,
        name="open",
        owner=io,
        attribute="open",
        describe=_single_path("file", None),
        alias="io",
    ))
    return ops


def subprocess_operations() -> List[WatchedOperation]:
    ops = [
        WatchedOperation(
            subsystem=SUBSYSTEM_SUBPROCESS,
            name="Popen",
            owner=subprocess.Popen,
            attribute="__init__",
            describe=_command_at(1, "args"),
        ),
        WatchedOperation(
            subsystem=SUBSYSTEM_SUBPROCESS,
            name="system",
            owner=os,
            attribute="system",
            describe=_command_at(0, "command"),
        ),
    ]
    for attr in ("run", "call", "check_call", "check_output"):
        ops.append(WatchedOperation(
            subsystem=SUBSYSTEM_SUBPROCESS,
            name=attr,
            owner=subprocess,
            attribute=attr,
            describe=_command_at(0, "args"),
        ))
    return ops


def network_operations() -> List[WatchedOperation]:
    """
    Outbound requests for both transports.

    ``putrequest`` is the one step every client stack shares (urllib,
    http.client, urllib3/requests), so a single binding covers plain and
    secure connections and each call is routed by the connection type.
    """
    return [
        WatchedOperation(
            subsystem=SUBSYSTEM_HTTP,
            name="request",
            owner=http.client.HTTPConnection,
            attribute="putrequest",
            describe=describe_request,
            route=route_request,
            routes=(SUBSYSTEM_HTTPS,),
        ),
    ]


def import_operation() -> WatchedOperation:
    return WatchedOperation(
        subsystem=SUBSYSTEM_IMPORT,
        name=None,
        owner=builtins,
        attribute="__import__",
        describe=describe_import,
        opaque=False,
    )


# -----------------------------------------------------------------------------
# ARGUMENT SUMMARIES
# -----------------------------------------------------------------------------

def describe_request(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    """Summarize ``putrequest(self, method, url)`` as ``METHOD scheme://host/path``."""
    conn = args[0]
    method = str(_arg(args, kwargs, 1, "method", "GET")).upper()
    url = str(_arg(args, kwargs, 2, "url", "/"))
    if "://" in url:
        # Absolute form, as sent through a forward proxy
        return f"{method} {url}"

    scheme = "https" if is_secure_connection(conn) else "http"
    host = getattr(conn, "_tunnel_host", None) or getattr(conn, "host", "")
    port = getattr(conn, "_tunnel_port", None) or getattr(conn, "port", None)
    if ":" in host and not host.startswith("["):
        host = f"[{host}]"
    netloc = host
    if port is not None and port != getattr(conn, "default_port", None):
        netloc = f"{host}:{port}"
    return f"{method} {scheme}://{netloc}{url}"


def route_request(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    return SUBSYSTEM_HTTPS if is_secure_connection(args[0]) else SUBSYSTEM_HTTP


def is_secure_connection(conn: Any) -> bool:
    if _HTTPS_CONNECTION is not None and isinstance(conn, _HTTPS_CONNECTION):
        return True
    # urllib3 TLS connections derive from the plain class but keep the TLS port
    return getattr(conn, "default_port", None) == http.client.HTTPS_PORT


def describe_import(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
    name = str(_arg(args, kwargs, 0, "name", ""))
    level = _arg(args, kwargs, 4, "level", 0) or 0
    return "." * int(level) + name


def describe_path(value: Any) -> str:
    """Render a path-like, bytes path or file descriptor as text."""
    try:
        return os.fsdecode(os.fspath(value))
    except TypeError:
        return str(value)


def describe_command(value: Any) -> str:
    """Render a command given as a string or as an argument sequence."""
    if isinstance(value, (str, bytes, os.PathLike)):
        return describe_path(value)
    if isinstance(value, Iterable):
        return " ".join(describe_path(part) for part in value)
    return str(value)


# -----------------------------------------------------------------------------
# PRIVATE HELPERS
# -----------------------------------------------------------------------------

def _fs_operation(owner: Any, attr: str, describe: ArgsDescriber) -> WatchedOperation:
    return WatchedOperation(
        subsystem=SUBSYSTEM_FS,
        name=attr,
        owner=owner,
        attribute=attr,
        describe=describe,
        after_install=_mirror_os_capabilities if owner is os else None,
    )


def _arg(args: Tuple[Any, ...], kwargs: Dict[str, Any], index: int, name: str, default: Any = None) -> Any:
    if len(args) > index:
        return args[index]
    return kwargs.get(name, default)


def _single_path(param: str, default: Optional[str]) -> ArgsDescriber:
    def describe(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
        return describe_path(_arg(args, kwargs, 0, param, default))
    return describe


def _path_pair(fmt: Callable[[str, str], str]) -> ArgsDescriber:
    def describe(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
        src = describe_path(_arg(args, kwargs, 0, "src"))
        dst = describe_path(_arg(args, kwargs, 1, "dst"))
        return fmt(src, dst)
    return describe


def _command_at(index: int, param: str) -> ArgsDescriber:
    def describe(args: Tuple[Any, ...], kwargs: Dict[str, Any]) -> str:
        return describe_command(_arg(args, kwargs, index, param, ""))
    return describe


def _copy_summary(src: str, dst: str) -> str:
    return f"source: {src}, dest: {dst}"


def _move_summary(src: str, dst: str) -> str:
    return f"from: {src} to: {dst}"


def _mirror_os_capabilities(original: Any, wrapper: Any) -> None:
    """Register the wrapper wherever os advertises the original's capabilities."""
    for set_name in _OS_CAPABILITY_SETS:
        capabilities = getattr(os, set_name, None)
        if isinstance(capabilities, set) and original in capabilities:
            capabilities.add(wrapper)
