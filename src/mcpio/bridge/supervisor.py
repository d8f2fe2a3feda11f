import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from anyio import create_task_group

from .console import Console
from .interfaces import IConsole
from .models import BridgeConfig, BridgeReport, ServerResult, ServerSpec, ServerStatus
from .runtime import ServerRuntime

logger = logging.getLogger(__name__)


class Supervisor:
    """
    Runs one ServerRuntime per spec concurrently and waits for all of them.

    There is no way to stop a single server; the supervisor returns once
    every runtime has finished on its own.
    """

    def __init__(self, config: BridgeConfig, console: Optional[IConsole] = None):
        self._config = config
        self._console = console or Console()

    def build_runtimes(self, specs: Sequence[ServerSpec]) -> List[ServerRuntime]:
        runtimes = [ServerRuntime(spec, self._config, self._console) for spec in specs]
        self._warn_name_collisions(runtimes)
        return runtimes

    async def run(self, specs: Sequence[ServerSpec]) -> BridgeReport:
        runtimes = self.build_runtimes(specs)
        results: List[Optional[ServerResult]] = [None] * len(runtimes)

        async with create_task_group() as tg:
            for index, runtime in enumerate(runtimes):
                tg.start_soon(
                    self._run_one, index, runtime, results, name=f"server-{runtime.name}"
                )

        return BridgeReport(results=[r for r in results if r is not None])

    @staticmethod
    async def _run_one(
        index: int, runtime: ServerRuntime, results: List[Optional[ServerResult]]
    ) -> None:
        start_time = datetime.now()
        try:
            results[index] = await runtime.run()
        except Exception as e:
            logger.error("%s: runtime failed: %s", runtime.name, e, exc_info=True)
            results[index] = ServerResult(
                name=runtime.name,
                status=ServerStatus.ERROR,
                error_message=str(e),
                fifo_path=runtime.paths.fifo_path,
                log_path=runtime.paths.log_path,
                start_time=start_time,
                end_time=datetime.now(),
            )

    @staticmethod
    def _warn_name_collisions(runtimes: Sequence[ServerRuntime]) -> None:
        by_name: Dict[str, List[str]] = defaultdict(list)
        for runtime in runtimes:
            by_name[runtime.name].append(runtime.spec.name)
        for name, originals in by_name.items():
            if len(originals) > 1:
                logger.warning(
                    "Servers %s all map to %r and will share %s files",
                    ", ".join(repr(o) for o in originals),
                    name,
                    name,
                )
