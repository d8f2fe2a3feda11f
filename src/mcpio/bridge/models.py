"""
This module defines the Pydantic data models for the mcpio process bridge.
"""
import enum
import os
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

IO_DIR_NAME = ".mcpio"
FIFO_SUFFIX = ".in.fifo"
LOG_SUFFIX = ".out.log"

DEFAULT_MAX_LINE_BYTES = 64 * 1024
DEFAULT_REAP_TIMEOUT = 5.0
DEFAULT_ENCODING = "utf-8"


class ServerSpec(BaseModel):
    """
    A named server as given on the command line: its name plus the command
    (executable followed by its arguments) to spawn.
    """
    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="User-given server name, before sanitizing")
    command: Tuple[str, ...] = Field(
        ..., min_length=1, description="Executable followed by its arguments"
    )

    @property
    def executable(self) -> str:
        return self.command[0]

    @property
    def args(self) -> Tuple[str, ...]:
        return self.command[1:]


class ServerPaths(BaseModel):
    """
    File locations of one server inside the communication directory.
    """
    model_config = ConfigDict(frozen=True)

    base_dir: Path = Field(..., description="Base directory given to the bridge")
    io_dir: Path = Field(..., description="Communication directory, <base_dir>/.mcpio")
    fifo_path: Path = Field(..., description="Named pipe feeding the child's stdin")
    log_path: Path = Field(..., description="Append-only transcript of the child's output")

    @classmethod
    def for_server(cls, base_dir: str | Path, name: str) -> "ServerPaths":
        base = Path(base_dir)
        io_dir = base / IO_DIR_NAME
        return cls(
            base_dir=base,
            io_dir=io_dir,
            fifo_path=io_dir / f"{name}{FIFO_SUFFIX}",
            log_path=io_dir / f"{name}{LOG_SUFFIX}",
        )

    @property
    def relative_fifo(self) -> str:
        return os.path.relpath(self.fifo_path, self.base_dir)

    @property
    def relative_log(self) -> str:
        return os.path.relpath(self.log_path, self.base_dir)


class BridgeConfig(BaseModel):
    """
    Run-wide settings shared by every server runtime.
    """
    base_dir: Path = Field(Path("."), description="Base directory for .mcpio files")
    mirror: bool = Field(False, description="Mirror in/out/err lines to the console")
    encoding: str = Field(
        DEFAULT_ENCODING, description="Encoding used to decode mirrored lines"
    )
    max_line_bytes: int = Field(
        DEFAULT_MAX_LINE_BYTES, gt=0, description="Longest accepted line, in bytes"
    )
    reap_timeout: float = Field(
        DEFAULT_REAP_TIMEOUT,
        ge=0,
        description="Seconds to wait for a child to exit once its output streams close",
    )
    extra_env: Dict[str, str] = Field(
        default_factory=dict,
        description="Variables merged over the inherited environment of every child",
    )


class SetupStage(str, enum.Enum):
    """
    The step of server setup that failed.
    """
    IO_DIR = "io_dir"
    FIFO_CREATE = "fifo_create"
    LOG_OPEN = "log_open"
    FIFO_OPEN = "fifo_open"
    SPAWN = "spawn"


class ServerStatus(str, enum.Enum):
    """
    Final status of one server runtime.
    """
    COMPLETED = "completed"
    SETUP_FAILED = "setup_failed"
    ERROR = "error"


class ServerResult(BaseModel):
    """
    Outcome of one server runtime, reported back to the supervisor.
    """
    name: str = Field(..., description="Sanitized server name")
    status: ServerStatus = Field(..., description="Final status of the runtime")
    stage: Optional[SetupStage] = Field(None, description="Failed setup step, if any")
    error_message: Optional[str] = Field(None, description="Diagnostic for failed runtimes")
    exit_code: Optional[int] = Field(
        None, description="Child exit code, when it exited within the reap timeout"
    )
    fifo_path: Optional[Path] = Field(None, description="Named pipe of the server")
    log_path: Optional[Path] = Field(None, description="Transcript log of the server")
    start_time: datetime = Field(..., description="When the runtime started")
    end_time: Optional[datetime] = Field(None, description="When the runtime finished")


class BridgeReport(BaseModel):
    """
    Aggregate of every server result of one bridge run, in spec order.
    """
    results: List[ServerResult] = Field(default_factory=list)

    @property
    def started(self) -> List[ServerResult]:
        return [r for r in self.results if r.status == ServerStatus.COMPLETED]

    @property
    def failed(self) -> List[ServerResult]:
        return [r for r in self.results if r.status != ServerStatus.COMPLETED]
