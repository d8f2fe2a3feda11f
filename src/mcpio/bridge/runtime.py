import logging
import os
import subprocess
from datetime import datetime
from typing import Callable, Optional, Tuple

import anyio
from anyio import (
    CancelScope,
    Event,
    create_task_group,
    move_on_after,
    open_process,
    to_thread,
)
from anyio.abc import ByteReceiveStream, ByteSendStream, Process

from .exceptions import SetupError, SpawnError
from .fifo import FifoReceiveStream, ensure_io_dir, recreate_fifo, remove_fifo
from .interfaces import IConsole, IServerRuntime
from .line_reader import iter_lines
from .models import (
    BridgeConfig,
    ServerPaths,
    ServerResult,
    ServerSpec,
    ServerStatus,
    SetupStage,
)
from .spec_parser import sanitize_name
from .transcript import TranscriptLog

logger = logging.getLogger(__name__)

IN = "in"
OUT = "out"
ERR = "err"


class ServerRuntime(IServerRuntime):
    """
    Full lifecycle of one bridged server.

    Setup creates the communication directory, a fresh named pipe, the
    append-only log and the child process. Three tasks then move lines
    around: the input pump (pipe -> child stdin), and one copier each for
    the child's stdout and stderr (-> log, optionally -> console). The
    runtime finishes when both output streams reach end-of-stream; the pump
    is cancelled at that point, the child's stdin is closed and the child is
    reaped with a bounded wait.
    """

    def __init__(self, spec: ServerSpec, config: BridgeConfig, console: IConsole):
        self._spec = spec
        self._config = config
        self._console = console
        self._name = sanitize_name(spec.name)
        self._paths = ServerPaths.for_server(config.base_dir, self._name)

        # Set once by the input pump, read by the stderr copier
        self._got_input = Event()

        self._process: Optional[Process] = None
        self._transcript: Optional[TranscriptLog] = None
        self._fifo: Optional[FifoReceiveStream] = None
        self._fifo_created = False
        self._stdin_closed = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def spec(self) -> ServerSpec:
        return self._spec

    @property
    def paths(self) -> ServerPaths:
        return self._paths

    @property
    def process(self) -> Optional[Process]:
        return self._process

    @property
    def got_input(self) -> bool:
        return self._got_input.is_set()

    def mirrors_input(self) -> bool:
        return self._config.mirror

    def mirrors_stdout(self) -> bool:
        return self._config.mirror

    def mirrors_stderr(self) -> bool:
        # Until the first input line is forwarded, stderr is treated as
        # startup diagnostics and always shown.
        return self._config.mirror or not self._got_input.is_set()

    async def run(self) -> ServerResult:
        start_time = datetime.now()
        try:
            try:
                fifo, process = await self._setup()
            except SetupError as e:
                logger.error("%s", e)
                return self._result(
                    ServerStatus.SETUP_FAILED,
                    start_time,
                    stage=e.stage,
                    error_message=str(e),
                )

            await to_thread.run_sync(
                self._console.announce_files,
                self._name,
                self._paths.relative_fifo,
                self._paths.relative_log,
            )

            await self._pump_until_output_closes(fifo, process)
            await self._close_stdin()
            exit_code = await self._reap(process)
            logger.debug("%s: output closed, exit code %s", self._name, exit_code)
            return self._result(ServerStatus.COMPLETED, start_time, exit_code=exit_code)
        finally:
            with CancelScope(shield=True):
                await self._teardown()

    async def _setup(self) -> Tuple[FifoReceiveStream, Process]:
        ensure_io_dir(self._paths.io_dir)
        recreate_fifo(self._paths.fifo_path)
        self._fifo_created = True
        self._transcript = TranscriptLog(self._paths.log_path).open()
        # Opened before spawning so that no setup failure can orphan a child
        self._fifo = FifoReceiveStream.open(self._paths.fifo_path)
        self._process = await self._spawn()
        return self._fifo, self._process

    async def _spawn(self) -> Process:
        env = None
        if self._config.extra_env:
            env = {**os.environ, **self._config.extra_env}
        logger.debug(
            "%s: starting %s with args %s",
            self._name,
            self._spec.executable,
            list(self._spec.args),
        )
        try:
            return await open_process(
                [self._spec.executable, *self._spec.args],
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except Exception as e:
            raise SpawnError(f"{self._name}: start failed: {e}") from e

    async def _pump_until_output_closes(
        self, fifo: FifoReceiveStream, process: Process
    ) -> None:
        stdin, stdout, stderr = process.stdin, process.stdout, process.stderr
        if stdin is None or stdout is None or stderr is None:
            raise RuntimeError(f"{self._name}: child was started without piped stdio")
        async with create_task_group() as tg:
            tg.start_soon(self._pump_input, fifo, stdin, name=f"{self._name}-in")
            async with create_task_group() as copiers:
                copiers.start_soon(
                    self._copy_output,
                    stdout,
                    OUT,
                    self.mirrors_stdout,
                    name=f"{self._name}-out",
                )
                copiers.start_soon(
                    self._copy_output,
                    stderr,
                    ERR,
                    self.mirrors_stderr,
                    name=f"{self._name}-err",
                )
            tg.cancel_scope.cancel()

    async def _pump_input(self, fifo: ByteReceiveStream, stdin: ByteSendStream) -> None:
        try:
            async for line in iter_lines(fifo, self._config.max_line_bytes):
                await stdin.send(line + b"\n")
                self._got_input.set()
                if self.mirrors_input():
                    await self._mirror(IN, line)
        except Exception as e:
            logger.debug("%s: input pump stopped: %s", self._name, e)
            self._record_error(IN, e)

    async def _copy_output(
        self,
        stream: ByteReceiveStream,
        kind: str,
        should_mirror: Callable[[], bool],
    ) -> None:
        transcript = self._transcript
        if transcript is None:
            raise RuntimeError(f"{self._name}: transcript log is not open")
        try:
            async for line in iter_lines(stream, self._config.max_line_bytes):
                transcript.append_line(line)
                if should_mirror():
                    await self._mirror(kind, line)
        except Exception as e:
            logger.debug("%s: %s copier stopped: %s", self._name, kind, e)
            self._record_error(kind, e)

    async def _close_stdin(self) -> None:
        if self._stdin_closed or self._process is None or self._process.stdin is None:
            return
        self._stdin_closed = True
        try:
            await self._process.stdin.aclose()
        except (OSError, anyio.BrokenResourceError) as e:
            logger.debug("%s: closing child stdin failed: %s", self._name, e)

    async def _reap(self, process: Process) -> Optional[int]:
        with move_on_after(self._config.reap_timeout):
            return await process.wait()
        logger.debug(
            "%s: pid %s still running %.1fs after its output closed, not waiting",
            self._name,
            process.pid,
            self._config.reap_timeout,
        )
        return None

    async def _teardown(self) -> None:
        await self._close_stdin()
        if self._fifo is not None:
            await self._fifo.aclose()
        if self._fifo_created:
            remove_fifo(self._paths.fifo_path)
        if self._transcript is not None:
            self._transcript.close()

    def _record_error(self, kind: str, error: BaseException) -> None:
        if self._transcript is not None:
            self._transcript.record_error(self._name, kind, error)

    async def _mirror(self, kind: str, line: bytes) -> None:
        # A slow stdout reader only holds up the stream being mirrored
        await to_thread.run_sync(
            self._console.mirror_line, self._name, kind, self._decode(line)
        )

    def _decode(self, line: bytes) -> str:
        return line.decode(self._config.encoding, errors="replace")

    def _result(
        self,
        status: ServerStatus,
        start_time: datetime,
        stage: Optional[SetupStage] = None,
        error_message: Optional[str] = None,
        exit_code: Optional[int] = None,
    ) -> ServerResult:
        return ServerResult(
            name=self._name,
            status=status,
            stage=stage,
            error_message=error_message,
            exit_code=exit_code,
            fifo_path=self._paths.fifo_path,
            log_path=self._paths.log_path,
            start_time=start_time,
            end_time=datetime.now(),
        )
