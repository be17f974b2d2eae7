import asyncio
import enum
import logging
from typing import Any, Callable, Dict, Optional, Union

from .chain import DEFAULT_PORT, DevChain
from .config import ENGINE_TIMEOUT, POLL_INTERVAL, NodeConfig, build_node_config
from .errors import (
    ConfigValidationError,
    DuplicateStartError,
    EngineOperationError,
    EngineStartError,
)
from .logsink import LogSink
from .messages import (
    AddAccount,
    BlockchainState,
    Command,
    FailedToStart,
    ForceMine,
    GetBlockchainState,
    MakeSnapshot,
    RevertSnapshot,
    Started,
    StartMining,
    StartRpc,
    StopMining,
)
from .network import TransportChannel
from .sync import StateSynchronizer

logger = logging.getLogger(__name__)


class NodeState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    STARTING = "starting"
    RUNNING = "running"


class NodeSupervisor:
    """Owns the engine handle and serves the consumer's command channel.

    Engine calls run in a worker thread, one at a time, under `_lock`;
    the poll task and every command handler go through the same lock.
    A call that times out releases `_lock` while its thread keeps running;
    from then on only the engine's own `lock` orders it against later calls.
    """

    def __init__(
        self,
        transport: TransportChannel,
        engine_factory: Callable[[], Any] = DevChain,
        poll_interval: float = POLL_INTERVAL,
        engine_timeout: float = ENGINE_TIMEOUT,
    ) -> None:
        self.transport = transport
        self.sink = LogSink(transport)
        self.synchronizer = StateSynchronizer()
        self.engine_factory = engine_factory
        self.poll_interval = poll_interval
        self.engine_timeout = engine_timeout
        self.state = NodeState.UNINITIALIZED
        self.engine = None
        self.config: Optional[NodeConfig] = None
        self._lock = asyncio.Lock()
        self._poll_task: Optional[asyncio.Task] = None
        self._handlers: Dict[type, Callable[[Any], Any]] = {
            StartRpc: self._handle_start_rpc,
            GetBlockchainState: lambda cmd: self.push_state(),
            StartMining: lambda cmd: self.start_mining(),
            StopMining: lambda cmd: self.stop_mining(),
            ForceMine: lambda cmd: self.force_mine(),
            MakeSnapshot: lambda cmd: self.snapshot(),
            RevertSnapshot: lambda cmd: self.revert_snapshot(),
            AddAccount: lambda cmd: self.add_account(cmd.options),
        }

    # -----------------------------
    # Command loop
    # -----------------------------

    async def run(self) -> None:
        """Consume commands until the transport closes, then tear down."""
        self.transport.bind(asyncio.get_running_loop())
        logger.info("Starting TestRPCService")
        try:
            while True:
                command = await self.transport.receive()
                if command is None:
                    break
                await self.dispatch(command)
        finally:
            await self.close()

    async def dispatch(self, command: Command) -> None:
        handler = self._handlers.get(type(command))
        if handler is None:
            self.sink.warning(f"Unsupported command {command.TAG}")
            return
        try:
            await handler(command)
        except EngineOperationError as exc:
            self.sink.error(str(exc))

    async def _handle_start_rpc(self, command: StartRpc) -> None:
        try:
            self._ensure_not_started()
            config = build_node_config(command.options)
        except DuplicateStartError as exc:
            self.sink.warning(str(exc))
            return
        except ConfigValidationError as exc:
            self.sink.error(f"Invalid start options: {exc}")
            self.transport.send(FailedToStart(reason=str(exc)))
            return
        try:
            await self.start(config)
        except DuplicateStartError as exc:
            self.sink.warning(str(exc))
        except EngineStartError as exc:
            self.sink.error(f"ERR: {exc}")

    # -----------------------------
    # Engine access
    # -----------------------------

    async def _call(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
        async with self._lock:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs), timeout=self.engine_timeout
            )

    async def _engine_op(self, description: str, op: Union[str, Callable[..., Any]], *args: Any) -> Any:
        if self.state is not NodeState.RUNNING or self.engine is None:
            raise EngineOperationError(f"{description} failed: node is not running")
        fn = getattr(self.engine, op) if isinstance(op, str) else op
        try:
            return await self._call(fn, *args)
        except asyncio.TimeoutError as exc:
            raise EngineOperationError(
                f"{description} timed out after {self.engine_timeout}s"
            ) from exc
        except Exception as exc:
            raise EngineOperationError(f"{description} failed: {exc}") from exc

    # -----------------------------
    # Lifecycle
    # -----------------------------

    def _ensure_not_started(self) -> None:
        if self.state is not NodeState.UNINITIALIZED:
            port = self._port(self.config) if self.config else DEFAULT_PORT
            raise DuplicateStartError(f"TESTRPC ALREADY RUNNING ON PORT {port}")

    async def start(self, config: NodeConfig) -> None:
        self._ensure_not_started()
        self.transport.bind(asyncio.get_running_loop())
        self.state = NodeState.STARTING
        engine = None
        try:
            engine = self.engine_factory()
            await self._call(engine.start, config.to_engine_options(), logger=self.sink)
            await self._call(engine.listen, self._port(config))
            snapshot = await self._call(self.synchronizer.build_state, engine)
        except Exception as exc:
            self.state = NodeState.UNINITIALIZED
            reason = str(exc) or exc.__class__.__name__
            if engine is not None:
                await self._discard(engine)
            self.transport.send(FailedToStart(reason=reason))
            raise EngineStartError(reason) from exc

        self.engine = engine
        self.config = config
        self.state = NodeState.RUNNING
        self.transport.send(Started(snapshot=snapshot))
        self.sink.log("TESTRPC STARTED")
        self._poll_task = asyncio.create_task(self._poll_loop())

    @staticmethod
    def _port(config: NodeConfig) -> int:
        return config.port or DEFAULT_PORT

    async def _discard(self, engine) -> None:
        try:
            await asyncio.wait_for(asyncio.to_thread(engine.close), timeout=self.engine_timeout)
        except Exception as exc:
            logger.warning("engine close raised: %s", exc)

    async def close(self) -> None:
        """Stop polling first, then release the engine."""
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        engine, self.engine = self.engine, None
        self.state = NodeState.UNINITIALIZED
        if engine is not None:
            async with self._lock:
                await self._discard(engine)

    async def _poll_loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            try:
                await self.push_state()
            except EngineOperationError as exc:
                self.sink.error(str(exc))

    # -----------------------------
    # Operations
    # -----------------------------

    async def push_state(self) -> Dict[str, Any]:
        snapshot = await self._engine_op("state sync", self.synchronizer.build_state, self.engine)
        self.transport.send(BlockchainState(snapshot=snapshot))
        return snapshot

    async def start_mining(self) -> None:
        self.sink.log("Starting Mining....")
        await self._engine_op("start mining", "start_mining")
        await self.push_state()

    async def stop_mining(self) -> None:
        self.sink.log("Stopping Mining....")
        await self._engine_op("stop mining", "stop_mining")
        await self.push_state()

    async def force_mine(self) -> None:
        self.sink.log("Forcing Mine....")
        await self._engine_op("force mine", "process_blocks", 1)
        await self.push_state()

    async def snapshot(self) -> None:
        self.sink.log("Making Snapshot...")
        await self._engine_op("snapshot", "snapshot")

    async def revert_snapshot(self) -> None:
        self.sink.log("Reverting Snapshot...")
        reverted = await self._engine_op("revert snapshot", "revert")
        if not reverted:
            self.sink.log("...no snapshot to revert to")

    async def add_account(self, options: Optional[Dict[str, Any]] = None):
        self.sink.log("Adding account...")
        unlocked = not (self.config and self.config.accounts_locked)

        def _create_and_register(engine):
            account = engine.create_account(options or {})
            engine.add_account(account, unlocked=unlocked)
            return account

        account = await self._engine_op("add account", _create_and_register, self.engine)
        self.sink.log("...account added: " + account.address)
        return account
